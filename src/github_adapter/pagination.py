"""
Pagination module for walking GitHub list endpoints page by page

GitHub exposes the continuation as a ``Link`` response header:

    Link: <https://api.github.com/repos?page=3&per_page=100>; rel="next", <...>; rel="last"

Iteration is lazy and single-pass: a page is requested only when a consumer
asks for more than what is already buffered.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, List, Optional, Protocol, TYPE_CHECKING

from github_adapter.exceptions import GitHubAPIError, PaginationStateError
from github_adapter.request import APIRequest
from github_adapter.response import APIResponse, parse_json_body

if TYPE_CHECKING:
    from github_adapter.http_client import HTTPClient


ItemFactory = Callable[[Any], Any]
ItemInitializer = Callable[[Any], None]


class Page(Protocol):
    """One HTTP response's worth of items"""
    items: List[Any]


PageParser = Callable[[Any, Optional[ItemFactory]], Page]


def _make_items(raw_items: List[Any], item_factory: Optional[ItemFactory]) -> List[Any]:
    if item_factory is None:
        return list(raw_items)
    return [item_factory(raw_item) for raw_item in raw_items]


@dataclass
class ArrayPage:
    """Page of an endpoint returning a bare JSON array"""
    items: List[Any] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Any, item_factory: Optional[ItemFactory] = None) -> 'ArrayPage':
        if data is None:
            return cls([])
        if not isinstance(data, list):
            raise GitHubAPIError(f"Expected a JSON array page, got {type(data).__name__}")
        return cls(_make_items(data, item_factory))


@dataclass
class SearchResultPage:
    """Page of a search endpoint: nested items plus aggregate metadata"""
    items: List[Any] = field(default_factory=list)
    total_count: int = 0
    incomplete_results: bool = False

    @classmethod
    def from_json(cls, data: Any, item_factory: Optional[ItemFactory] = None) -> 'SearchResultPage':
        if not data:
            return cls([])
        if not isinstance(data, dict):
            raise GitHubAPIError(f"Expected a JSON search result object, got {type(data).__name__}")
        return cls(
            items=_make_items(data.get('items') or [], item_factory),
            total_count=int(data.get('total_count', 0)),
            incomplete_results=bool(data.get('incomplete_results', False))
        )


def find_next_request(request: APIRequest, response: APIResponse) -> Optional[APIRequest]:
    """
    Locate the next page in the ``Link`` header

    Args:
        request: Request that produced the response
        response: Response holding the Link header

    Returns:
        Request targeting exactly the server's rel="next" URL, or None when
        this was the last page
    """
    links = response.headers.get('Link')
    if not links:
        return None

    for token in ', '.join(links).split(', '):
        token = token.strip()
        if token.endswith('rel="next"'):
            start = token.index('<') + 1
            end = token.index('>')
            # The server URL already carries the query string
            return request.to_builder().without_args().set_raw_url_path(token[start:end]).build()

    return None


class BasePageIterator(ABC):
    """Iterator over pages; has_next() fetches lazily and is idempotent"""

    def __init__(self):
        self._next_page: Optional[Page] = None

    def __iter__(self) -> Iterator[Page]:
        return self

    def has_next(self) -> bool:
        self._fetch()
        return self._next_page is not None

    def __next__(self) -> Page:
        self._fetch()
        page = self._next_page
        if page is None:
            raise StopIteration
        self._next_page = None
        return page

    @abstractmethod
    def _fetch(self) -> None:
        ...

    def final_response(self) -> APIResponse:
        raise PaginationStateError("No response is available for this iterator.")


class SingletonPageIterator(BasePageIterator):
    """Iterator over one page already in memory"""

    def __init__(self, page: Page):
        super().__init__()
        self._page = page
        self._fetched = False

    def _fetch(self) -> None:
        if not self._fetched:
            self._fetched = True
            self._next_page = self._page


class PageIterator(BasePageIterator):
    """
    Walks an endpoint by following ``rel="next"`` links

    State: the pending next request (None once the walk is over), the buffered
    page, and the final response retained after exhaustion. Not safe for
    concurrent use.
    """

    def __init__(self, client: 'HTTPClient', request: APIRequest, page_parser: PageParser,
                 item_factory: Optional[ItemFactory] = None, page_size: int = 0,
                 item_initializer: Optional[ItemInitializer] = None):
        super().__init__()
        if page_size > 0:
            request = request.to_builder().set('per_page', page_size).build()
        if request.method != 'GET':
            raise ValueError('Request method "GET" is required for page iterator.')

        self.client = client
        self.next_request: Optional[APIRequest] = request
        self.page_parser = page_parser
        self.item_factory = item_factory
        self.item_initializer = item_initializer
        self._final_response: Optional[APIResponse] = None
        self.logger = logging.getLogger(__name__)

    @classmethod
    def of_singleton(cls, page: Page) -> SingletonPageIterator:
        return SingletonPageIterator(page)

    def final_response(self) -> APIResponse:
        """
        Full response of the last page

        Raises:
            PaginationStateError: If pages remain to be fetched
        """
        if self.has_next():
            raise PaginationStateError("Final response is not available until after iterator is done.")
        return self._final_response

    def _parse_page(self, connector_response) -> Page:
        data = parse_json_body(connector_response, expect_list=True)
        return self.page_parser(data, self.item_factory)

    def _fetch(self) -> None:
        if self._next_page is not None:
            return  # already fetched
        if self.next_request is None:
            return  # no more data to fetch

        self.logger.debug(f"Fetching page {self.next_request.url}")
        response = self.client.send_request(self.next_request, self._parse_page)
        page = response.body
        self._initialize_items(page.items)
        self._next_page = page

        self.next_request = find_next_request(self.next_request, response)
        if self.next_request is None:
            self._final_response = response

    def _initialize_items(self, items: List[Any]) -> None:
        if self.item_initializer is not None:
            for item in items:
                self.item_initializer(item)


class ItemIterator:
    """Item-at-a-time and page-at-a-time views over one page iterator"""

    def __init__(self, page_iterator: BasePageIterator):
        self.page_iterator = page_iterator
        self._current_page: Optional[Page] = None
        self._next_item_index = 0

    def __iter__(self) -> 'ItemIterator':
        return self

    def _current_page_exhausted(self) -> bool:
        return self._current_page is None or len(self._current_page.items) <= self._next_item_index

    def _advance_page(self) -> None:
        self._current_page = next(self.page_iterator)
        self._next_item_index = 0

    def has_next(self) -> bool:
        """Whether another item is available; may fetch pages, skipping empty ones"""
        while self._current_page_exhausted() and self.page_iterator.has_next():
            self._advance_page()
        return not self._current_page_exhausted()

    def __next__(self) -> Any:
        if not self.has_next():
            raise StopIteration
        item = self._current_page.items[self._next_item_index]
        self._next_item_index += 1
        return item

    def next_page(self) -> List[Any]:
        """
        Remaining items of the current page, moving the cursor to the page boundary

        The first call always fetches a page, even an empty one.

        Raises:
            StopIteration: If no items remain
        """
        if self._current_page is None:
            if not self.page_iterator.has_next():
                raise StopIteration
            self._advance_page()
        elif not self.has_next():
            raise StopIteration

        items = list(self._current_page.items[self._next_item_index:])
        self._next_item_index = len(self._current_page.items)
        return items

    def current_page(self) -> Optional[Page]:
        if self._current_page is None and self.page_iterator.has_next():
            self._advance_page()
        return self._current_page

    def final_response(self) -> APIResponse:
        return self.page_iterator.final_response()


class PaginatedEndpoint:
    """
    Iterable view of a paginated endpoint

    Every iteration starts a new walk. Items pass through the item factory and
    then the item initializer before a consumer sees them.
    """

    def __init__(self, client: 'HTTPClient', request: APIRequest, page_parser: PageParser,
                 item_factory: Optional[ItemFactory] = None,
                 item_initializer: Optional[ItemInitializer] = None):
        self.client = client
        self.request = request
        self.page_parser = page_parser
        self.item_factory = item_factory
        self.item_initializer = item_initializer
        self.page_size = 0
        self._first_page: Optional[Page] = None

    @classmethod
    def from_items(cls, items: List[Any]) -> 'PaginatedEndpoint':
        """Endpoint over a single in-memory page"""
        return _InMemoryEndpoint(ArrayPage(list(items)))

    def with_page_size(self, size: int) -> 'PaginatedEndpoint':
        self.page_size = size
        return self

    def page_iterator(self) -> BasePageIterator:
        return PageIterator(
            self.client, self.request, self.page_parser, self.item_factory,
            self.page_size, self.item_initializer
        )

    def item_iterator(self) -> ItemIterator:
        return ItemIterator(self.page_iterator())

    def __iter__(self) -> ItemIterator:
        return self.item_iterator()

    @staticmethod
    def _collect(iterator: ItemIterator) -> List[Any]:
        items = list(iterator.next_page())
        while iterator.has_next():
            items.extend(iterator.next_page())
        return items

    def to_list(self) -> List[Any]:
        return self._collect(self.item_iterator())

    def to_set(self) -> List[Any]:
        """Unique items in first-seen order"""
        unique: List[Any] = []
        seen = set()
        for item in self.to_list():
            try:
                if item in seen:
                    continue
                seen.add(item)
            except TypeError:
                # unhashable items such as plain dicts
                if item in unique:
                    continue
            unique.append(item)
        return unique

    def to_response(self) -> APIResponse:
        """All items wrapped in the final page's response"""
        iterator = self.item_iterator()
        items = self._collect(iterator)
        return APIResponse.with_body(iterator.final_response(), items)

    def _metadata_page(self) -> Page:
        if self._first_page is None:
            self._first_page = self.item_iterator().current_page()
        return self._first_page

    @property
    def total_count(self) -> int:
        """Total result count reported by a search endpoint"""
        return getattr(self._metadata_page(), 'total_count', 0)

    @property
    def incomplete_results(self) -> bool:
        return getattr(self._metadata_page(), 'incomplete_results', False)


class _InMemoryEndpoint(PaginatedEndpoint):

    def __init__(self, page: Page):
        super().__init__(None, APIRequest(), ArrayPage.from_json)
        self._page = page

    def page_iterator(self) -> BasePageIterator:
        return SingletonPageIterator(self._page)
