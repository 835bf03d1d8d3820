"""Background capture runner.

Validation happens on the caller's thread so bad input is reported at once;
acquisition and persistence run on a daemon thread while the session state
stays observable.
"""
from __future__ import annotations

from typing import Optional
import threading

from fieldsync.models import CaptureState
from fieldsync.session import CaptureSessionController


def _spawn(target, *args) -> threading.Thread:
    thread = threading.Thread(target=target, args=args, daemon=True)
    thread.start()
    return thread


def start_capture(controller: CaptureSessionController, label: str, note: str = "",
                  camera_id: Optional[str] = None) -> CaptureState:
    request = controller.begin_submit(label, note, camera_id)
    _spawn(controller.run_capture, request)
    return controller.state


def start_save_without_location(controller: CaptureSessionController) -> CaptureState:
    request = controller.begin_override()
    _spawn(controller.run_override, request)
    return controller.state
