"""
Main entry point for the NC viewer.
Initializes logging and the Qt application, opens the main window and starts the event loop.
"""

import argparse
import sys
from PySide6.QtWidgets import QApplication
from config.viewer_config import ConfigManager
from gui.main_window import MainWindow
from utils.log import configure_logging


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="G-code editor with a live 3D toolpath viewer")
    parser.add_argument("file", nargs="?", help="G-code file to open")
    parser.add_argument("--config", help="JSON viewer configuration")
    parser.add_argument("--verbose", action="store_true", help="debug logging")
    return parser.parse_args(argv)


def main():
    """Initializes and runs the PySide6 application."""
    args = parse_args()
    config = ConfigManager.load_config(args.config) if args.config else ConfigManager.default()
    if args.verbose:
        config.verbose = True
        config.lexer_debug = True
    configure_logging(config.verbose)

    app = QApplication(sys.argv[:1])
    window = MainWindow(config, args.file)
    window.show()
    sys.exit(app.exec())

if __name__ == '__main__':
    main()
