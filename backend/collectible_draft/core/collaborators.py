"""
Item and image persistence, consumed by the pipeline through two small
protocols. The in-memory versions back the default app and the tests; a
real deployment swaps in its database and object storage.
"""

import logging
import mimetypes
import time
import uuid
from typing import Dict, Optional, Protocol

from collectible_draft.schemas.records import ItemSubmission

logger = logging.getLogger(__name__)


class ItemStore(Protocol):
    async def create_item(self, submission: ItemSubmission, primary_image_id: Optional[str] = None) -> str:
        """Persist the item with its chosen primary image and return its id. Raises on failure."""


class ImageStore(Protocol):
    async def upload(self, data: bytes, mime_type: str, item_id: str) -> str:
        """Store the photo under the item and return a public URL. Raises on failure."""


def image_path(item_id: str, mime_type: str, now: Optional[float] = None) -> str:
    """<item_id>/<millis>.<ext>"""
    ext = (mimetypes.guess_extension(mime_type or "") or ".jpg").lstrip(".")
    if ext == "jpe":
        ext = "jpg"
    millis = int((now if now is not None else time.time()) * 1000)
    return f"{item_id}/{millis}.{ext}"


class InMemoryItemStore:
    def __init__(self):
        self.items: Dict[str, ItemSubmission] = {}
        self.primary_images: Dict[str, Optional[str]] = {}

    async def create_item(self, submission: ItemSubmission, primary_image_id: Optional[str] = None) -> str:
        item_id = str(uuid.uuid4())
        self.items[item_id] = submission
        self.primary_images[item_id] = primary_image_id
        logger.info("Created item %s (%s)", item_id, submission.title)
        return item_id


class InMemoryImageStore:
    def __init__(self, base_url: str = "memory://item-images"):
        self.base_url = base_url.rstrip("/")
        self.objects: Dict[str, bytes] = {}

    async def upload(self, data: bytes, mime_type: str, item_id: str) -> str:
        path = image_path(item_id, mime_type)
        self.objects[path] = data
        return f"{self.base_url}/{path}"
