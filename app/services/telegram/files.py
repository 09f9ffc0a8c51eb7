import logging
from typing import Callable

import httpx

from app.services.exceptions import DownloadFailure
from app.services.image_generation.base import InputImage
from app.services.telegram.client import TelegramAPIError, TelegramClient

logger = logging.getLogger(__name__)


def download_images(
    telegram: TelegramClient,
    file_ids: list[str],
    on_progress: Callable[[int, int], None] | None = None,
) -> list[InputImage]:
    """
    Download every file id in order. The first failure aborts with
    DownloadFailure carrying the 1-based position of the image.
    """
    images: list[InputImage] = []
    total = len(file_ids)
    for position, file_id in enumerate(file_ids, start=1):
        if on_progress is not None:
            on_progress(position, total)
        try:
            data, mime_type = telegram.download_file(file_id)
        except (TelegramAPIError, httpx.HTTPError) as e:
            logger.warning("image_download_failed", extra={"attempt": position, "error": str(e)})
            raise DownloadFailure(position, e) from e
        images.append(InputImage(data=data, mime_type=mime_type))
    return images
