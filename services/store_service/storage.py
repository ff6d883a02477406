"""File-backed persistence for carts (one JSON document per storage key)."""

import os
import re
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from libs.common.config import get_settings
from libs.common.logging import get_logger
from services.store_service.schemas import CartState

logger = get_logger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class CartStorage:
    def __init__(self, key: Optional[str] = None, directory: Optional[Path] = None):
        settings = get_settings()
        self.key = _UNSAFE_KEY_CHARS.sub("_", key or settings.CART_STORAGE_KEY)
        self.directory = Path(directory or settings.CART_STORAGE_DIR)

    @property
    def path(self) -> Path:
        return self.directory / f"{self.key}.json"

    def load(self) -> CartState:
        if not self.path.exists():
            return CartState()
        try:
            return CartState.model_validate_json(self.path.read_text(encoding="utf-8"))
        except ValidationError:
            # A corrupt or outdated document is dropped rather than blocking the cart.
            logger.warning("Discarding unreadable cart at %s", self.path)
            return CartState()

    def save(self, state: CartState) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".json.tmp")
        tmp_path.write_text(state.model_dump_json(), encoding="utf-8")
        os.replace(tmp_path, self.path)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
