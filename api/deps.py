"""FastAPI dependencies -- process-wide acquisition controller."""

from dotenv import load_dotenv

from crawler.acquisition import AcquisitionController

load_dotenv()

_controller: AcquisitionController | None = None


def get_controller() -> AcquisitionController:
    """Shared controller.

    Browser sessions are serialized by the crawler's lock; the API client is
    reference-counted so overlapping runs share one HTTP connection pool.
    """
    global _controller
    if _controller is None:
        _controller = AcquisitionController()
    return _controller


async def close_controller() -> None:
    global _controller
    if _controller is None:
        return
    browser = getattr(_controller, "_browser", None)
    if browser is not None and getattr(browser, "is_started", False):
        await browser.stop()
    _controller = None
