"""
Viewer window: the rendering surface of a viewer session.

Talks to the editor only through the HTTP bridge, the same way an embedded
web view would.
"""
import logging

from PySide6.QtWidgets import (QWidget, QVBoxLayout, QHBoxLayout, QSlider, QLabel,
                               QComboBox, QCheckBox)
from PySide6.QtCore import Qt

from bridge.client import BridgeClient
from config.viewer_config import THEMES
from core.selection import SelectionEngine
from viewer_surface import ViewerSurface
from .viewport import Viewport
from .workers import BridgePollWorker, BridgePostWorker

logger = logging.getLogger(__name__)


class ViewerWindow(QWidget):
    def __init__(self, endpoint, token, config, after=0, parent=None):
        super().__init__(parent)
        self.setWindowTitle("NC Viewer")
        self.resize(900, 700)

        self.engine = SelectionEngine(config.get_excluded_codes(),
                                      max_movements=config.max_movements,
                                      arc_divisions=config.arc_divisions,
                                      theme=config.theme,
                                      lexer_debug=config.lexer_debug)
        self.client = BridgeClient(endpoint, token, after=after)
        # Posts get their own session on their own thread
        self.post_client = BridgeClient(endpoint, token)
        self.poster = BridgePostWorker(self.post_client)
        self.surface = ViewerSurface(self.poster.post, self.engine,
                                     on_update=self.on_surface_update)
        self.worker = BridgePollWorker(self.client)

        self.setup_ui(config.theme)
        self.connect_signals()

    def setup_ui(self, theme):
        layout = QVBoxLayout(self)

        self.viewport = Viewport(self.engine)
        layout.addWidget(self.viewport, 1)

        self.scrubber = QSlider(Qt.Horizontal)
        self.scrubber.setRange(0, 0)
        layout.addWidget(self.scrubber)

        info_layout = QHBoxLayout()
        self.x_label = QLabel("X: 0.000")
        self.y_label = QLabel("Y: 0.000")
        self.z_label = QLabel("Z: 0.000")
        self.segment_label = QLabel("No toolpath")
        for label in (self.x_label, self.y_label, self.z_label):
            info_layout.addWidget(label)
        info_layout.addStretch()
        info_layout.addWidget(self.segment_label)

        self.display_checks = {}
        for option, title in (('rapid', "Rapids"), ('grid', "Grid"), ('axes', "Axes")):
            check = QCheckBox(title)
            check.setChecked(True)
            info_layout.addWidget(check)
            self.display_checks[option] = check

        self.theme_selector = QComboBox()
        self.theme_selector.addItems(list(THEMES))
        self.theme_selector.setCurrentText(theme)
        info_layout.addWidget(self.theme_selector)
        layout.addLayout(info_layout)

    def connect_signals(self):
        self.worker.messageReceived.connect(self.on_message)
        self.scrubber.valueChanged.connect(self.surface.scrub)
        self.viewport.rayClicked.connect(self.on_ray_clicked)
        self.theme_selector.currentTextChanged.connect(self.surface.set_theme)
        for option, check in self.display_checks.items():
            check.toggled.connect(lambda _, option=option: self.viewport.toggle_display_option(option))

    def start(self):
        """Start polling and announce the surface to the host."""
        self.poster.start()
        self.worker.start()
        self.surface.connected()
        self.surface.ready()

    def on_message(self, payload):
        self.surface.handle_payload(payload)

    def on_ray_clicked(self, origin, direction):
        threshold = self.engine.click_threshold(self.viewport.zoom_factor)
        self.surface.click(origin, direction, threshold)

    def on_surface_update(self, kind, result=None):
        count = self.engine.segment_count
        self.scrubber.blockSignals(True)
        self.scrubber.setRange(0, max(0, count - 1))
        self.scrubber.setValue(self.engine.scrubber)
        self.scrubber.blockSignals(False)

        x, y, z = self.engine.position_readout()
        self.x_label.setText(f"X: {x:.3f}")
        self.y_label.setText(f"Y: {y:.3f}")
        self.z_label.setText(f"Z: {z:.3f}")
        if count:
            text = f"Segment {self.engine.scrubber + 1} / {count}"
            if self.engine.dropped:
                text += f" ({self.engine.dropped} moves not shown)"
            self.segment_label.setText(text)
        else:
            self.segment_label.setText("No toolpath")

        if result is not None and result.reframe:
            self.viewport.reset_view()
        else:
            self.viewport.update()

    def closeEvent(self, event):
        self.worker.stop()
        self.poster.stop()
        self.client.close()
        self.post_client.close()
        super().closeEvent(event)
