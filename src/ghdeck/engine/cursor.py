"""Scrolling selection window over an ordered list of rows."""

from dataclasses import dataclass


@dataclass
class Cursor:
    """Selection index plus the visible window ``[top_bound_index, bottom_bound_index]``.

    The window holds ``page_size`` rows, or fewer when the list is shorter.
    With no rows the selection is 0 and ``bottom_bound_index`` is -1.
    """

    viewport_height: int = 20
    item_height: int = 1
    num_items: int = 0
    current_index: int = 0
    top_bound_index: int = 0
    bottom_bound_index: int = -1

    def __post_init__(self) -> None:
        if self.item_height < 1:
            raise ValueError("item_height must be positive")
        self.bottom_bound_index = min(self.num_items - 1, self.top_bound_index + self.page_size - 1)

    @property
    def page_size(self) -> int:
        """Number of rows that fit in the viewport (at least one)."""
        return max(1, self.viewport_height // self.item_height)

    @property
    def scroll_offset(self) -> int:
        """Line offset of the window top inside the rendered list."""
        return self.top_bound_index * self.item_height

    def next(self) -> int:
        if self.num_items == 0 or self.current_index >= self.num_items - 1:
            return self.current_index
        if self.current_index >= self.bottom_bound_index:
            self.top_bound_index += 1
            self.bottom_bound_index += 1
        self.current_index += 1
        return self.current_index

    def prev(self) -> int:
        if self.current_index <= 0:
            self.current_index = 0
            return 0
        self.current_index -= 1
        if self.current_index < self.top_bound_index:
            self.top_bound_index -= 1
            self.bottom_bound_index -= 1
        return self.current_index

    def first(self) -> int:
        self.current_index = 0
        self.top_bound_index = 0
        self.bottom_bound_index = min(self.num_items - 1, self.page_size - 1)
        return self.current_index

    def last(self) -> int:
        if self.num_items == 0:
            return self.first()
        self.current_index = self.num_items - 1
        self.bottom_bound_index = self.num_items - 1
        self.top_bound_index = max(0, self.num_items - self.page_size)
        return self.current_index

    def set_num_items(self, num_items: int) -> None:
        """Resize the list without moving the selection. Call ``clamp()`` if it shrank."""
        self.num_items = max(0, num_items)
        self.bottom_bound_index = min(self.num_items - 1, self.top_bound_index + self.page_size - 1)

    def set_viewport_height(self, height: int) -> None:
        self.viewport_height = height
        self.clamp()

    def clamp(self) -> None:
        """Pull the selection and window back inside the list."""
        if self.num_items == 0:
            self.reset()
            return

        self.current_index = max(0, min(self.current_index, self.num_items - 1))
        top = self.top_bound_index
        if self.current_index < top:
            top = self.current_index
        elif self.current_index > top + self.page_size - 1:
            top = self.current_index - self.page_size + 1
        top = max(0, min(top, self.num_items - self.page_size))
        self.top_bound_index = top
        self.bottom_bound_index = min(self.num_items - 1, top + self.page_size - 1)

    def reset(self) -> None:
        self.current_index = 0
        self.top_bound_index = 0
        self.bottom_bound_index = min(self.num_items - 1, self.page_size - 1)

    def is_at_last(self) -> bool:
        return self.num_items > 0 and self.current_index == self.num_items - 1

    def visible_range(self) -> range:
        """Indices of rows inside the window."""
        return range(self.top_bound_index, self.bottom_bound_index + 1)
