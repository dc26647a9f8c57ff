# Shared fixtures: headless Qt platform, a Qt application for the QTimer-backed
# scheduler, and a virtual-clock scheduler for engine scenarios.

import os
import sys

import pytest

from darkmode.services.scheduler import ManualScheduler

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")


@pytest.fixture
def qt_app():
    """QCoreApplication instance; skips when PyQt6 is not importable."""
    QtCore = pytest.importorskip("PyQt6.QtCore")
    app = QtCore.QCoreApplication.instance() or QtCore.QCoreApplication(sys.argv)
    return app


@pytest.fixture
def scheduler():
    return ManualScheduler()
