"""
Unit tests for ConditionalGet, ETag and ContentLength middleware.
"""

import hashlib

import pytest

from httpware.http import HTTPResponse, HTTPStatus
from httpware.middleware import (
    ConditionalGetMiddleware,
    ContentLengthMiddleware,
    ETagMiddleware,
    HeadMiddleware,
    MiddlewarePipeline,
)
from httpware.middleware.etag import DEFAULT_CACHE_CONTROL


LAST_MODIFIED = "Wed, 21 Oct 2015 07:28:00 GMT"


class ClosingBody:

    def __init__(self, *chunks: bytes, path=None):
        self.chunks = list(chunks)
        self.closed = False
        if path is not None:
            self.path = path

    def __iter__(self):
        return iter(self.chunks)

    def close(self):
        self.closed = True


def app_returning(response: HTTPResponse):
    return lambda request: response


class TestConditionalGet:

    def fresh(self, make_request, request_headers, response_headers, method="GET", status=HTTPStatus.OK):
        body = ClosingBody(b"content")
        response = HTTPResponse(
            status=status,
            headers={"Content-Type": "text/plain", "Content-Length": "7", **response_headers},
            body=body,
        )
        request = make_request(method=method, headers=request_headers)
        result = ConditionalGetMiddleware()(request, app_returning(response))
        return result, body

    def test_etag_match(self, make_request):
        result, body = self.fresh(make_request, {"If-None-Match": '"abc"'}, {"ETag": '"abc"'})

        assert result.status == HTTPStatus.NOT_MODIFIED
        assert result.body == b""
        assert "Content-Type" not in result.headers
        assert "Content-Length" not in result.headers
        assert result.headers["ETag"] == '"abc"'
        assert body.closed

    def test_etag_mismatch(self, make_request):
        result, body = self.fresh(make_request, {"If-None-Match": '"abc"'}, {"ETag": '"xyz"'})

        assert result.status == HTTPStatus.OK
        assert result.body is body
        assert not body.closed

    def test_modified_since_equal(self, make_request):
        result, _ = self.fresh(make_request, {"If-Modified-Since": LAST_MODIFIED}, {"Last-Modified": LAST_MODIFIED})

        assert result.status == HTTPStatus.NOT_MODIFIED

    def test_modified_since_later(self, make_request):
        result, _ = self.fresh(
            make_request,
            {"If-Modified-Since": "Thu, 22 Oct 2015 07:28:00 GMT"},
            {"Last-Modified": LAST_MODIFIED},
        )

        assert result.status == HTTPStatus.NOT_MODIFIED

    def test_modified_since_earlier(self, make_request):
        result, _ = self.fresh(
            make_request,
            {"If-Modified-Since": "Tue, 20 Oct 2015 07:28:00 GMT"},
            {"Last-Modified": LAST_MODIFIED},
        )

        assert result.status == HTTPStatus.OK

    def test_unparseable_modified_since(self, make_request):
        result, _ = self.fresh(make_request, {"If-Modified-Since": "garbage"}, {"Last-Modified": LAST_MODIFIED})

        assert result.status == HTTPStatus.OK

    def test_all_validators_must_pass(self, make_request):
        headers = {"If-None-Match": '"abc"', "If-Modified-Since": LAST_MODIFIED}

        both, _ = self.fresh(make_request, headers, {"ETag": '"abc"', "Last-Modified": LAST_MODIFIED})
        assert both.status == HTTPStatus.NOT_MODIFIED

        stale_etag, _ = self.fresh(make_request, headers, {"ETag": '"xyz"', "Last-Modified": LAST_MODIFIED})
        assert stale_etag.status == HTTPStatus.OK

        no_date, _ = self.fresh(make_request, headers, {"ETag": '"abc"'})
        assert no_date.status == HTTPStatus.OK

    def test_no_validators(self, make_request):
        result, _ = self.fresh(make_request, {}, {"ETag": '"abc"', "Last-Modified": LAST_MODIFIED})

        assert result.status == HTTPStatus.OK

    def test_head_is_conditional(self, make_request):
        result, _ = self.fresh(make_request, {"If-None-Match": '"abc"'}, {"ETag": '"abc"'}, method="HEAD")

        assert result.status == HTTPStatus.NOT_MODIFIED

    def test_other_methods_untouched(self, make_request):
        result, _ = self.fresh(make_request, {"If-None-Match": '"abc"'}, {"ETag": '"abc"'}, method="POST")

        assert result.status == HTTPStatus.OK

    def test_only_200_responses(self, make_request):
        result, _ = self.fresh(
            make_request, {"If-None-Match": '"abc"'}, {"ETag": '"abc"'}, status=HTTPStatus.PARTIAL_CONTENT
        )

        assert result.status == HTTPStatus.PARTIAL_CONTENT


class TestETag:

    def test_sets_weak_etag_and_cache_control(self, make_request):
        response = HTTPResponse(body=[b"hello", b" world"])

        result = ETagMiddleware()(make_request(), app_returning(response))

        digest = hashlib.md5(b"hello world").hexdigest()
        assert result.headers["ETag"] == f'W/"{digest}"'
        assert result.headers["Cache-Control"] == DEFAULT_CACHE_CONTROL
        assert result.body == b"hello world"

    def test_closes_original_body(self, make_request):
        body = ClosingBody(b"abc")

        result = ETagMiddleware()(make_request(), app_returning(HTTPResponse(body=body)))

        assert body.closed
        assert result.body == b"abc"

    def test_created_gets_etag(self, make_request):
        response = HTTPResponse(status=HTTPStatus.CREATED, body=b"new")

        assert "ETag" in ETagMiddleware()(make_request(), app_returning(response)).headers

    @pytest.mark.parametrize("status", [HTTPStatus.NOT_FOUND, HTTPStatus.PARTIAL_CONTENT, HTTPStatus.NO_CONTENT])
    def test_other_statuses_skipped(self, make_request, status):
        response = HTTPResponse(status=status, body=b"x")

        result = ETagMiddleware()(make_request(), app_returning(response))

        assert "ETag" not in result.headers

    def test_empty_body_has_no_etag(self, make_request):
        result = ETagMiddleware()(make_request(), app_returning(HTTPResponse(body=[b"", b""])))

        assert "ETag" not in result.headers
        assert "Cache-Control" not in result.headers

    def test_existing_etag_kept(self, make_request):
        response = HTTPResponse(headers={"ETag": '"mine"'}, body=b"x")

        result = ETagMiddleware()(make_request(), app_returning(response))

        assert result.headers["ETag"] == '"mine"'

    def test_last_modified_skips(self, make_request):
        response = HTTPResponse(headers={"Last-Modified": LAST_MODIFIED}, body=b"x")

        assert "ETag" not in ETagMiddleware()(make_request(), app_returning(response)).headers

    def test_no_cache_skips(self, make_request):
        response = HTTPResponse(headers={"Cache-Control": "no-cache"}, body=b"x")

        result = ETagMiddleware()(make_request(), app_returning(response))

        assert "ETag" not in result.headers
        assert result.headers["Cache-Control"] == "no-cache"

    def test_file_bodies_skipped(self, make_request):
        body = ClosingBody(b"file data", path="/srv/file.txt")
        response = HTTPResponse(body=body)

        result = ETagMiddleware(no_cache_control="no-cache")(make_request(), app_returning(response))

        assert "ETag" not in result.headers
        assert result.body is body
        assert not body.closed
        assert result.headers["Cache-Control"] == "no-cache"

    def test_custom_cache_control(self, make_request):
        middleware = ETagMiddleware(no_cache_control="no-store", cache_control="public")

        tagged = middleware(make_request(), app_returning(HTTPResponse(body=b"x")))
        untagged = middleware(make_request(), app_returning(HTTPResponse(status=404, body=b"x")))

        assert tagged.headers["Cache-Control"] == "public"
        assert untagged.headers["Cache-Control"] == "no-store"

    def test_existing_cache_control_kept(self, make_request):
        response = HTTPResponse(headers={"Cache-Control": "public, max-age=60"}, body=b"x")

        result = ETagMiddleware()(make_request(), app_returning(response))

        assert "ETag" in result.headers
        assert result.headers["Cache-Control"] == "public, max-age=60"


class TestContentLength:

    def test_sets_length_for_bytes(self, make_request):
        result = ContentLengthMiddleware()(make_request(), app_returning(HTTPResponse(body=b"hello")))

        assert result.headers["Content-Length"] == "5"

    def test_buffers_iterable_and_closes(self, make_request):
        body = ClosingBody(b"ab", b"cde")

        result = ContentLengthMiddleware()(make_request(), app_returning(HTTPResponse(body=body)))

        assert result.headers["Content-Length"] == "5"
        assert result.body == b"abcde"
        assert body.closed

    def test_existing_length_untouched(self, make_request):
        body = ClosingBody(b"abc")
        response = HTTPResponse(headers={"Content-Length": "3"}, body=body)

        result = ContentLengthMiddleware()(make_request(), app_returning(response))

        assert result.body is body
        assert not body.closed

    def test_transfer_encoding_untouched(self, make_request):
        response = HTTPResponse(headers={"Transfer-Encoding": "chunked"}, body=[b"a"])

        result = ContentLengthMiddleware()(make_request(), app_returning(response))

        assert "Content-Length" not in result.headers

    @pytest.mark.parametrize("status", [HTTPStatus.NO_CONTENT, HTTPStatus.NOT_MODIFIED, HTTPStatus.CONTINUE])
    def test_bodiless_statuses(self, make_request, status):
        result = ContentLengthMiddleware()(make_request(), app_returning(HTTPResponse(status=status)))

        assert "Content-Length" not in result.headers


class TestCachingStack:

    def test_etag_then_conditional_get(self, make_request):
        pipeline = MiddlewarePipeline().use(ConditionalGetMiddleware(), ETagMiddleware())
        app = pipeline.wrap(lambda request: HTTPResponse(headers={"Content-Type": "text/plain"}, body=b"same"))

        first = app(make_request())
        etag = first.headers["ETag"]

        second = app(make_request(headers={"If-None-Match": etag}))

        assert first.status == HTTPStatus.OK
        assert second.status == HTTPStatus.NOT_MODIFIED
        assert second.body == b""
        assert second.headers["ETag"] == etag

    def full_stack(self):
        return MiddlewarePipeline().use(
            HeadMiddleware(),
            ConditionalGetMiddleware(),
            ETagMiddleware(),
            ContentLengthMiddleware(),
        ).wrap(lambda request: HTTPResponse(body=iter([b"hello world"])))

    def test_head_matches_get(self, make_request):
        app = self.full_stack()

        get = app(make_request())
        head = app(make_request(method="HEAD"))

        assert get.read_body() == b"hello world"
        assert head.body == b""
        assert head.headers["Content-Length"] == get.headers["Content-Length"] == "11"
        assert head.headers["ETag"] == get.headers["ETag"]

    def test_conditional_head(self, make_request):
        app = self.full_stack()
        etag = app(make_request()).headers["ETag"]

        response = app(make_request(method="HEAD", headers={"If-None-Match": etag}))

        assert response.status == HTTPStatus.NOT_MODIFIED
        assert response.body == b""
