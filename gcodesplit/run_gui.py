"""Launch the gcodesplit wizard."""
import sys

from PyQt6.QtWidgets import QApplication

from gcodesplit.ui.wizard import SplitWizard


def main():
    app = QApplication(sys.argv)
    app.setApplicationName("gcodesplit")

    wizard = SplitWizard()
    wizard.show()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
