"""
The main window: G-code editor, log console and the viewer session host.
"""
import logging

from PySide6.QtWidgets import (QMainWindow, QWidget, QVBoxLayout, QHBoxLayout,
                               QPushButton, QFileDialog, QTextEdit, QSplitter, QLabel)
from PySide6.QtCore import Qt, QTimer, Signal
from PySide6.QtGui import QFont

from bridge.channel import BridgeChannel
from config.viewer_config import ConfigManager
from core.toolpath import ToolpathExtractor
from utils.log import LOG_FORMAT, TIME_FORMAT
from viewer_host import ViewerHost
from .editor import Editor
from .log_console import QtLogHandler
from .viewer_window import ViewerWindow
from .workers import DiagnosticsWorker

logger = logging.getLogger(__name__)

SAMPLE_GCODE = """G21 G17 ; metric, XY plane
G0 X0 Y0 Z5 ; rapid to start
G1 Z0 F1000 ; plunge
G1 X10 Y0 F2000
G2 X20 Y10 I10 J0 ; clockwise arc
G1 X30 Y10
G3 X40 Y0 I5 J-5 ; counterclockwise arc
G0 Z5 ; retract
G0 X0 Y0
M30"""


class MainWindow(QMainWindow):
    # Raw event payload from the bridge, re-emitted onto the GUI thread
    bridgeEvent = Signal(str)

    def __init__(self, config=None, file_path=None):
        super().__init__()
        self.setWindowTitle("NC Viewer")
        self.setGeometry(100, 100, 1200, 900)

        self.config = config or ConfigManager.default()
        self.channel = BridgeChannel(self.config.bridge_capacity, self.config.bridge_host)
        self.host = ViewerHost(self.channel, self.config, caret_mover=self.move_caret)
        self.viewer_window = None
        self.diagnostics_worker = None
        self.pending_diagnostics = None

        # Debounce document changes while typing
        self.change_timer = QTimer()
        self.change_timer.setSingleShot(True)
        self.change_timer.timeout.connect(self.on_document_settled)

        self.setup_ui()
        self.install_log_handler()
        self.connect_signals()

        if file_path:
            self.open_file(file_path)
        else:
            self.editor.setPlainText(SAMPLE_GCODE)

    def setup_ui(self):
        main_widget = QWidget()
        self.setCentralWidget(main_widget)
        main_layout = QVBoxLayout(main_widget)

        toolbar_layout = QHBoxLayout()
        self.load_button = QPushButton("Load G-Code File")
        self.save_button = QPushButton("Save G-Code")
        self.viewer_button = QPushButton("Open Viewer")
        self.status_label = QLabel("Ready")
        toolbar_layout.addWidget(self.load_button)
        toolbar_layout.addWidget(self.save_button)
        toolbar_layout.addWidget(self.viewer_button)
        toolbar_layout.addStretch()
        toolbar_layout.addWidget(self.status_label)
        main_layout.addLayout(toolbar_layout)

        main_splitter = QSplitter(Qt.Vertical)
        main_layout.addWidget(main_splitter)

        self.editor = Editor()
        main_splitter.addWidget(self.editor)

        console_splitter = QSplitter(Qt.Horizontal)

        error_widget = QWidget()
        error_layout = QVBoxLayout(error_widget)
        error_layout.setContentsMargins(0, 0, 0, 0)
        error_layout.addWidget(QLabel("Diagnostics:"))
        self.error_console = QTextEdit()
        self.error_console.setReadOnly(True)
        error_layout.addWidget(self.error_console)
        console_splitter.addWidget(error_widget)

        console_widget = QWidget()
        console_layout = QVBoxLayout(console_widget)
        console_layout.setContentsMargins(0, 0, 0, 0)
        console_layout.addWidget(QLabel("Log:"))
        self.console = QTextEdit()
        self.console.setReadOnly(True)
        self.console.setFont(QFont("Courier", 9))
        console_layout.addWidget(self.console)
        console_splitter.addWidget(console_widget)

        main_splitter.addWidget(console_splitter)
        console_splitter.setSizes([400, 600])
        main_splitter.setSizes([700, 200])

    def install_log_handler(self):
        self.log_handler = QtLogHandler(self.console)
        self.log_handler.setFormatter(logging.Formatter(LOG_FORMAT, TIME_FORMAT))
        logging.getLogger().addHandler(self.log_handler)

    def connect_signals(self):
        self.load_button.clicked.connect(self.load_gcode_file)
        self.save_button.clicked.connect(self.save_gcode_file)
        self.viewer_button.clicked.connect(self.open_viewer)
        self.editor.textChanged.connect(self.on_text_changed)
        self.editor.caretLineChanged.connect(self.host.caret_moved)
        self.bridgeEvent.connect(self.on_bridge_event)
        self.channel.add_listener(self.bridgeEvent.emit)

    # Files

    def open_file(self, file_path):
        try:
            with open(file_path, 'r') as f:
                content = f.read()
        except OSError as exc:
            logger.error("Could not open %s: %s", file_path, exc)
            return
        self.editor.setPlainText(content)
        logger.info("Loaded: %s", file_path)
        if self.host.attached:
            # A new document replaces the old one in the viewer
            self.host.attach(content)

    def load_gcode_file(self):
        file_path, _ = QFileDialog.getOpenFileName(
            self, "Open G-Code File", "",
            "G-Code Files (*.ngc *.gcode *.nc *.tap *.txt);;All Files (*)"
        )
        if file_path:
            self.open_file(file_path)

    def save_gcode_file(self):
        file_path, _ = QFileDialog.getSaveFileName(
            self, "Save G-Code File", "",
            "G-Code Files (*.nc *.ngc *.gcode);;All Files (*)"
        )
        if file_path:
            with open(file_path, 'w') as f:
                f.write(self.editor.toPlainText())
            logger.info("Saved: %s", file_path)

    # Viewer session

    def open_viewer(self):
        """Start the bridge if needed and open a rendering surface on it."""
        if self.viewer_window is not None:
            self.viewer_window.raise_()
            self.viewer_window.activateWindow()
            return
        endpoint = self.channel.start()
        # Skip whatever an earlier viewer left in the buffer
        after = self.channel.buffer.latest_version
        self.host.attach(self.editor.toPlainText())

        self.viewer_window = ViewerWindow(endpoint, self.channel.token, self.config, after)
        self.viewer_window.setAttribute(Qt.WA_DeleteOnClose)
        self.viewer_window.destroyed.connect(self.on_viewer_closed)
        self.viewer_window.show()
        self.viewer_window.start()
        self.status_label.setText(f"Viewer on {endpoint}")

    def on_viewer_closed(self):
        self.viewer_window = None
        self.host.detach()
        self.status_label.setText("Ready")

    def on_bridge_event(self, payload):
        self.host.handle_incoming(payload)

    def move_caret(self, line_number):
        self.editor.goto_line(line_number)
        self.editor.highlight_lines([line_number])

    def on_text_changed(self):
        self.change_timer.start(150)

    def on_document_settled(self):
        text = self.editor.toPlainText()
        self.host.document_changed(text)
        self.update_diagnostics(text)

    def update_diagnostics(self, text):
        """Run an extraction pass off the GUI thread; only the latest text is kept waiting."""
        if self.diagnostics_worker is not None:
            self.pending_diagnostics = text
            return
        self.pending_diagnostics = None
        extractor = ToolpathExtractor(self.config.get_excluded_codes(),
                                      self.config.max_movements,
                                      self.config.arc_divisions)
        self.diagnostics_worker = DiagnosticsWorker(extractor, text)
        self.diagnostics_worker.diagnosticsReady.connect(self.show_diagnostics)
        self.diagnostics_worker.finished.connect(self.on_diagnostics_finished)
        self.diagnostics_worker.start()

    def on_diagnostics_finished(self):
        self.diagnostics_worker.deleteLater()
        self.diagnostics_worker = None
        if self.pending_diagnostics is not None:
            self.update_diagnostics(self.pending_diagnostics)

    def show_diagnostics(self, diagnostics):
        """Show extraction diagnostics in the console and the editor gutter."""
        if self.pending_diagnostics is not None:
            # Stale: a newer pass is about to run
            return
        errors = diagnostics.get_all_errors()
        if not errors:
            self.error_console.setText("No problems found.")
            self.editor.clear_error_highlights()
            return
        self.error_console.setText("\n".join(
            f"Line {e.line_number}: [{e.severity.value.upper()}] {e.message}" for e in errors))
        self.editor.highlight_error_lines(diagnostics.error_lines())

    def closeEvent(self, event):
        if self.viewer_window is not None:
            self.viewer_window.close()
        self.host.detach()
        self.channel.stop()
        if self.diagnostics_worker is not None:
            self.pending_diagnostics = None
            self.diagnostics_worker.wait()
        logging.getLogger().removeHandler(self.log_handler)
        super().closeEvent(event)
