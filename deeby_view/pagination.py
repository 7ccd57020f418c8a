import logging
import math
from typing import List, Optional, Sequence, TypeVar

from attrs import define, field

from deeby_view.constants import DEFAULT_PAGE_SIZE
from deeby_view.utils import inflect_e

logger = logging.getLogger(__name__)

T = TypeVar("T")


@define
class PaginationCoordinator:
    """Keeps track of the page shown by a view.

    In the default mode the view holds every row and cuts the page out of
    the filtered and sorted rows itself. In passthrough mode the rows given
    to the view are already the page fetched by the data source and the
    number of pages comes from the total reported by the source.

    Attributes:
        page_size: The number of rows on a page.
        page: The current page, starting at 1.
        passthrough: Whether the data source does the paging.
        total_row_count: The number of rows reported by the data source;
            only used in passthrough mode.
        row_count: The number of rows after filtering; only used when the
            view does the paging.
    """

    page_size: int = field(default=DEFAULT_PAGE_SIZE)
    page: int = field(default=1)
    passthrough: bool = field(default=False)
    total_row_count: int = field(default=0)
    row_count: int = field(default=0)

    def __attrs_post_init__(self) -> None:
        if self.page_size < 1:
            raise ValueError(
                f"Page size must be positive, got {self.page_size}"
            )

    @property
    def total_rows(self) -> int:
        """The number of rows the pages are computed from."""
        return self.total_row_count if self.passthrough else self.row_count

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_rows / self.page_size)

    @property
    def last_page(self) -> int:
        """The number of the last page; never less than 1."""
        return max(1, self.total_pages)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    @property
    def has_next(self) -> bool:
        return self.page < self.last_page

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    def update_counts(
        self,
        row_count: Optional[int] = None,
        total_row_count: Optional[int] = None,
    ) -> None:
        """Change the counts, keeping the current page in range."""
        if row_count is not None:
            self.row_count = row_count
        if total_row_count is not None:
            self.total_row_count = total_row_count
        if self.page > self.last_page:
            logger.debug(
                "Page %d is out of range; moving to %d",
                self.page,
                self.last_page,
            )
            self.page = self.last_page

    def set_page_size(self, page_size: int) -> None:
        """Change the page size and go back to the first page."""
        if page_size < 1:
            raise ValueError(f"Page size must be positive, got {page_size}")
        self.page_size = page_size
        self.page = 1

    def go_to(self, page: int) -> bool:
        """Move to a page.

        Requests before the first page or after the last one go to that
        page instead.

        Returns:
            True if the current page changed.
        """
        target = max(1, min(self.last_page, page))
        if target != page:
            logger.debug("Clamping page %d to %d", page, target)
        if target == self.page:
            return False
        self.page = target
        return True

    def next_page(self) -> bool:
        return self.go_to(self.page + 1)

    def previous_page(self) -> bool:
        return self.go_to(self.page - 1)

    def first_page(self) -> bool:
        return self.go_to(1)

    def go_to_last(self) -> bool:
        return self.go_to(self.last_page)

    def window(self, rows: Sequence[T]) -> List[T]:
        """The rows of the current page.

        In passthrough mode the rows are already the page and are returned
        unchanged.
        """
        if self.passthrough:
            return list(rows)
        return list(rows[self.offset : self.offset + self.page_size])

    def describe(self) -> str:
        """A short summary such as `Page 2 of 5 (47 rows)`."""
        count = self.total_rows
        return (
            f"Page {self.page} of {self.last_page} "
            f"({count} {inflect_e.plural('row', count)})"
        )
