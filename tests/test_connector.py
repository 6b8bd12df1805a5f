"""
Test suite for connector and response parsing components
Following TDD approach with AAA pattern and descriptive naming
"""

import json
import logging
from unittest.mock import Mock, patch

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from github_adapter.connector import CachingConnector, ConnectorResponse, RequestsConnector
from github_adapter.exceptions import GitHubAPIError
from github_adapter.request import RequestBuilder
from github_adapter.response import APIResponse, parse_json_body

from helpers import make_response


def _mock_session(status_code=200, content=b'{}', headers=None):
    session = Mock(spec=requests.Session)
    raw_response = Mock(spec=requests.Response)
    raw_response.status_code = status_code
    raw_response.headers = CaseInsensitiveDict(headers or {'Content-Type': 'application/json'})
    raw_response.url = 'https://api.github.com/user'
    raw_response.reason = 'OK'
    raw_response.content = content
    session.request.return_value = raw_response
    return session


class TestRequestsConnector:
    """Test suite for the requests-backed transport"""

    def test_authenticate_with_token_sets_authorization_header(self):
        """
        Test that token authentication sets the GitHub token header
        """
        # Arrange
        connector = RequestsConnector()

        # Act
        connector.authenticate({'type': 'token', 'token': 'ghp_abc'})

        # Assert
        assert connector.headers['Authorization'] == 'token ghp_abc'

    def test_authenticate_with_bearer_token_sets_bearer_header(self):
        """
        Test that bearer authentication is used for app installation tokens
        """
        # Arrange
        connector = RequestsConnector()

        # Act
        connector.authenticate({'type': 'bearer_token', 'token': 'jwt'})

        # Assert
        assert connector.headers['Authorization'] == 'Bearer jwt'

    def test_authenticate_with_unsupported_type_raises_value_error(self):
        """
        Test that unsupported authentication type raises ValueError
        """
        # Arrange
        connector = RequestsConnector()

        # Act & Assert
        with pytest.raises(ValueError, match="Unsupported authentication type"):
            connector.authenticate({'type': 'api_key', 'api_key': 'x'})

    def test_send_get_request_puts_args_in_url_and_no_body(self):
        """
        Test that a GET is sent with its query string and without data
        """
        # Arrange
        session = _mock_session()
        connector = RequestsConnector(session=session, timeout=5, user_agent='adapter-tests')
        request = RequestBuilder().with_url_path('/user/repos').with_('per_page', 10).build()

        # Act
        response = connector.send(request)

        # Assert
        args, kwargs = session.request.call_args
        assert args == ('GET', 'https://api.github.com/user/repos?per_page=10')
        assert kwargs['data'] is None
        assert kwargs['timeout'] == 5
        assert kwargs['headers']['User-Agent'] == 'adapter-tests'
        assert 'Content-Type' not in kwargs['headers']
        assert response.status_code == 200
        assert response.header('content-type') == 'application/json'

    def test_send_post_request_sends_json_body_with_content_type(self):
        """
        Test that a POST is sent with its JSON body and content type
        """
        # Arrange
        session = _mock_session(status_code=201)
        connector = RequestsConnector(session=session)
        request = (RequestBuilder()
                   .method('POST')
                   .with_url_path('/repos/octo/hello/issues')
                   .with_('title', 'Bug')
                   .build())

        # Act
        connector.send(request)

        # Assert
        args, kwargs = session.request.call_args
        assert args[0] == 'POST'
        assert json.loads(kwargs['data']) == {'title': 'Bug'}
        assert kwargs['headers']['Content-Type'] == 'application/json'

    def test_send_request_headers_override_connector_headers(self):
        """
        Test that per-request headers win over connector defaults
        """
        # Arrange
        session = _mock_session()
        connector = RequestsConnector(session=session, user_agent='default-agent')
        request = RequestBuilder().with_header('User-Agent', 'special-agent').build()

        # Act
        connector.send(request)

        # Assert
        assert session.request.call_args[1]['headers']['User-Agent'] == 'special-agent'

    def test_close_connection_closes_session(self):
        """
        Test that closing releases the session
        """
        # Arrange
        session = _mock_session()
        connector = RequestsConnector(session=session)

        # Act
        connector.close_connection()

        # Assert
        session.close.assert_called_once()
        assert connector.session is None


class TestCachingConnector:
    """Test suite for the cache-backed transport"""

    @patch('requests_cache.CachedSession')
    def test_send_creates_cached_session_lazily(self, mock_cached_session):
        """
        Test that the cached session is created on first use with cache-control support
        """
        # Arrange
        mock_cached_session.return_value = _mock_session()
        connector = CachingConnector(cache_name='test_cache', expire_after=120)

        # Act
        connector.send(RequestBuilder().with_url_path('/user').build())

        # Assert
        mock_cached_session.assert_called_once_with(
            'test_cache', backend='sqlite', expire_after=120, cache_control=True
        )

    @patch('requests_cache.CachedSession')
    def test_clear_cache_clears_session_cache(self, mock_cached_session):
        """
        Test that clear_cache empties the backing store
        """
        # Arrange
        cached_session = Mock()
        mock_cached_session.return_value = cached_session
        connector = CachingConnector()
        connector.session = connector._create_session()

        # Act
        connector.clear_cache()

        # Assert
        cached_session.cache.clear.assert_called_once()


class TestConnectorResponse:
    """Test suite for raw connector responses"""

    def test_headers_are_case_insensitive_multimap(self):
        """
        Test that header lookup ignores case and keeps every value
        """
        # Act
        response = ConnectorResponse(200, {'Link': ['<a>; rel="next"', '<b>; rel="last"'], 'ETag': '"x"'})

        # Assert
        assert response.header('link') == '<a>; rel="next"'
        assert response.headers['LINK'] == ['<a>; rel="next"', '<b>; rel="last"']
        assert response.header('etag') == '"x"'
        assert response.header('Missing') is None

    def test_case_insensitive_dict_with_string_values_is_normalised(self):
        """
        Test that headers already in a CaseInsensitiveDict still return whole values
        """
        # Act
        response = ConnectorResponse(200, CaseInsensitiveDict({'ETag': '"abc"', 'Link': ['<a>; rel="next"']}))

        # Assert
        assert response.header('etag') == '"abc"'
        assert response.headers['ETag'] == ['"abc"']
        assert response.header('Link') == '<a>; rel="next"'

    def test_body_stream_returns_content(self):
        """
        Test that the body is available as a byte stream
        """
        # Act
        stream = make_response(200, b'payload').body_stream()

        # Assert
        assert stream.read() == b'payload'


class TestParseJsonBody:
    """Test suite for JSON body handling by status code"""

    def test_parse_json_body_with_not_modified_returns_none(self):
        """
        Test that 304 yields no body
        """
        # Act & Assert
        assert parse_json_body(make_response(304)) is None

    def test_parse_json_body_with_no_content_returns_empty_list_for_arrays(self):
        """
        Test that 204 yields an empty list when a list is expected
        """
        # Act & Assert
        assert parse_json_body(make_response(204), expect_list=True) == []
        assert parse_json_body(make_response(204)) is None

    def test_parse_json_body_with_accepted_logs_and_returns_none(self, caplog):
        """
        Test that 202 is logged as still being generated
        """
        # Arrange
        response = make_response(202, {}, url='https://api.github.com/repos/octo/hello/forks')

        # Act
        with caplog.at_level(logging.INFO, logger='github_adapter.response'):
            body = parse_json_body(response)

        # Assert
        assert body is None
        assert 'fork is being created' in caplog.text

    def test_parse_json_body_with_invalid_json_raises_api_error(self):
        """
        Test that a non-JSON body raises with the original error chained
        """
        # Act & Assert
        with pytest.raises(GitHubAPIError, match="Failed to deserialize") as exc_info:
            parse_json_body(make_response(200, b'<html>'))

        assert isinstance(exc_info.value.__cause__, ValueError)

    def test_api_response_with_body_copies_metadata(self):
        """
        Test that with_body keeps status, headers and URL
        """
        # Arrange
        original = APIResponse.from_connector(
            make_response(200, [], {'ETag': '"x"'}, url='https://api.github.com/user/repos')
        )

        # Act
        response = APIResponse.with_body(original, ['a'])

        # Assert
        assert response.body == ['a']
        assert response.header('ETag') == '"x"'
        assert response.url == 'https://api.github.com/user/repos'
