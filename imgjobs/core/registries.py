from typing import Protocol

from PIL import Image


class ImageEncoder(Protocol):
    """Serializes a decoded image into a lossy output format."""

    content_type: str

    def encode(self, image: Image.Image, quality: int) -> bytes:
        """Encode at the given lossy quality (1-100)."""
        ...


class EncoderRegistry:
    """
    Output encoders by format name.

    Names are case-insensitive and may have aliases (``jpg`` for ``jpeg``).
    Frozen at startup outside development so the output format cannot change
    under a running worker.
    """

    def __init__(self):
        self._encoders: dict[str, ImageEncoder] = {}
        self._aliases: dict[str, str] = {}
        self._frozen = False

    def register(
        self, name: str, encoder: ImageEncoder, aliases: tuple[str, ...] = ()
    ) -> None:
        if self._frozen:
            raise RuntimeError(
                f"Cannot register encoder '{name}': registry is frozen"
            )
        name = name.lower()
        self._encoders[name] = encoder
        for alias in aliases:
            self._aliases[alias.lower()] = name

    def get(self, name: str) -> ImageEncoder:
        key = name.lower()
        key = self._aliases.get(key, key)
        if key not in self._encoders:
            raise KeyError(
                f"No encoder registered for format '{name}' "
                f"(available: {', '.join(self.list())})"
            )
        return self._encoders[key]

    def list(self) -> list[str]:
        return sorted(self._encoders)

    def freeze(self) -> None:
        self._frozen = True

    def is_frozen(self) -> bool:
        return self._frozen


encoder_registry = EncoderRegistry()
