from fastapi import Request

from showclock.ws.notifier import Notifier


def get_notifier(request: Request) -> Notifier:
    """The application's single notifier, built once in ``create_app``."""
    return request.app.state.notifier
