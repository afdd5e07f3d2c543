"""
Session History — every image produced during one studio run, in order.
"""

from typing import Iterator, Union

from .models import GeneratedImage, AngleView

HistoryItem = Union[GeneratedImage, AngleView]


class SessionHistory:
    """Append-only list of generated artifacts; cleared only on reset."""

    def __init__(self):
        self._items: list[HistoryItem] = []

    def append(self, *items: HistoryItem):
        self._items.extend(items)

    def clear(self):
        self._items = []

    def snapshot(self) -> list[HistoryItem]:
        return list(self._items)

    def to_display(self) -> list[dict]:
        """Flatten for side-by-side display: label, prompt, image."""
        entries = []
        for item in self._items:
            if isinstance(item, AngleView):
                entries.append({"label": item.view_label, "prompt": item.prompt_used, "image_data": item.image_data})
            else:
                entries.append({"label": item.style_name, "prompt": item.prompt_used, "image_data": item.image_data})
        return entries

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[HistoryItem]:
        return iter(list(self._items))
