"""
Unit tests for the static file handler.
"""

import os
from datetime import datetime, timezone
from pathlib import Path

import pytest

from httpware.handlers import StaticFileHandler, FileBody, clean_path_info, serve_static
from httpware.http import ByteRange, HTTPStatus, format_http_date


def body_bytes(response) -> bytes:
    try:
        return b"".join(response.iter_body())
    finally:
        response.close()


class TestCleanPathInfo:

    @pytest.mark.parametrize("path, expected", [
        ("/a/b/c", "/a/b/c"),
        ("/a/./b", "/a/b"),
        ("/a/b/../c", "/a/c"),
        ("/a//b/", "/a/b"),
        ("/../../etc/passwd", "/etc/passwd"),
        ("/..", "/"),
        ("", "/"),
        ("/", "/"),
        ("a/../b", "b"),
    ])
    def test_clean(self, path, expected):
        assert clean_path_info(path) == expected


class TestFileBody:

    def test_reads_range_in_chunks(self, static_root: Path):
        body = FileBody(static_root / "data.bin", ByteRange(10, 109), chunk_size=32)

        chunks = list(body)

        assert [len(c) for c in chunks] == [32, 32, 32, 4]
        assert b"".join(chunks) == bytes(range(10, 110))

    def test_is_lazy(self, tmp_path: Path):
        body = FileBody(tmp_path / "missing.bin", ByteRange(0, 9))

        assert body.path.endswith("missing.bin")
        assert body.length == 10
        with pytest.raises(FileNotFoundError):
            list(body)

    def test_close_stops_iteration(self, static_root: Path):
        body = FileBody(static_root / "data.bin", ByteRange(0, 1023), chunk_size=100)

        iterator = iter(body)
        assert next(iterator) == bytes(range(100))
        body.close()

        with pytest.raises(StopIteration):
            next(iterator)

    def test_empty_range(self, static_root: Path):
        body = FileBody(static_root / "empty.txt", ByteRange(0, -1))

        assert body.length == 0
        assert list(body) == []


class TestStaticFileHandler:

    def test_serves_file(self, static_root: Path, make_request):
        handler = StaticFileHandler(static_root)

        response = handler(make_request(path="/hello.txt"))

        assert response.status == HTTPStatus.OK
        assert response.headers["Content-Type"] == "text/plain"
        assert response.headers["Content-Length"] == "14"
        assert "Last-Modified" in response.headers
        assert isinstance(response.body, FileBody)
        assert body_bytes(response) == b"Hello, World!\n"

    def test_header_order(self, static_root: Path, make_request):
        handler = StaticFileHandler(static_root, headers={"Cache-Control": "public, max-age=60"})

        response = handler(make_request(path="/index.html"))

        assert list(response.headers)[:3] == ["Last-Modified", "Content-Type", "Cache-Control"]
        assert response.headers["Content-Type"] == "text/html"
        response.close()

    def test_custom_headers_override(self, static_root: Path, make_request):
        handler = StaticFileHandler(static_root, headers={"Content-Type": "application/x-custom"})

        response = handler(make_request(path="/hello.txt"))

        assert response.headers["Content-Type"] == "application/x-custom"
        response.close()

    def test_default_mime(self, static_root: Path, make_request):
        response = StaticFileHandler(static_root)(make_request(path="/unknown.zzz"))
        assert response.headers["Content-Type"] == "text/plain"
        response.close()

        response = StaticFileHandler(static_root, default_mime=None)(make_request(path="/unknown.zzz"))
        assert "Content-Type" not in response.headers
        response.close()

    def test_nested_and_dot_segments(self, static_root: Path, make_request):
        handler = StaticFileHandler(static_root)

        response = handler(make_request(path="/sub/../sub/./nested.css"))

        assert response.status == HTTPStatus.OK
        assert response.headers["Content-Type"] == "text/css"
        assert body_bytes(response) == b"body{}"

    def test_traversal_stays_in_root(self, static_root: Path, make_request):
        outside = static_root.parent / "secret.txt"
        outside.write_text("secret")
        handler = StaticFileHandler(static_root / "sub")

        response = handler(make_request(path="/../secret.txt"))

        assert response.status == HTTPStatus.NOT_FOUND

    def test_symlink_outside_root(self, static_root: Path, make_request):
        outside = static_root.parent / "outside.txt"
        outside.write_text("outside")
        link = static_root / "link.txt"
        try:
            link.symlink_to(outside)
        except (OSError, NotImplementedError):
            pytest.skip("symlinks not supported")

        response = StaticFileHandler(static_root)(make_request(path="/link.txt"))

        assert response.status == HTTPStatus.NOT_FOUND

    def test_missing_file(self, static_root: Path, make_request):
        response = StaticFileHandler(static_root)(make_request(path="/no such file.txt"))

        assert response.status == HTTPStatus.NOT_FOUND
        assert response.body == b"File not found: /no such file.txt\n"
        assert response.headers["Content-Type"] == "text/plain"
        assert response.headers["Content-Length"] == str(len(response.body))

    def test_directory_is_not_found(self, static_root: Path, make_request):
        response = StaticFileHandler(static_root)(make_request(path="/sub"))

        assert response.status == HTTPStatus.NOT_FOUND

    @pytest.mark.parametrize("method", ["POST", "PUT", "DELETE", "PATCH"])
    def test_method_not_allowed(self, static_root: Path, make_request, method):
        response = StaticFileHandler(static_root)(make_request(method=method, path="/hello.txt"))

        assert response.status == HTTPStatus.METHOD_NOT_ALLOWED
        assert response.headers["Allow"] == "GET, HEAD, OPTIONS"
        assert response.body == b"Method Not Allowed\n"

    def test_options(self, static_root: Path, make_request):
        response = StaticFileHandler(static_root)(make_request(method="OPTIONS", path="/hello.txt"))

        assert response.status == HTTPStatus.OK
        assert response.headers == {"Allow": "GET, HEAD, OPTIONS", "Content-Length": "0"}
        assert response.body == b""

    def test_head(self, static_root: Path, make_request):
        response = StaticFileHandler(static_root)(make_request(method="HEAD", path="/data.bin"))

        assert response.status == HTTPStatus.OK
        assert response.headers["Content-Length"] == "1024"
        assert response.body == b""

    def test_if_modified_since_exact_match(self, static_root: Path, make_request):
        path = static_root / "hello.txt"
        os.utime(path, (1445412480, 1445412480))
        last_modified = format_http_date(datetime.fromtimestamp(1445412480, tz=timezone.utc))

        response = StaticFileHandler(static_root)(
            make_request(path="/hello.txt", headers={"If-Modified-Since": last_modified})
        )

        assert response.status == HTTPStatus.NOT_MODIFIED
        assert response.body == b""

    def test_if_modified_since_other_date(self, static_root: Path, make_request):
        os.utime(static_root / "hello.txt", (1445412480, 1445412480))

        response = StaticFileHandler(static_root)(
            make_request(path="/hello.txt", headers={"If-Modified-Since": "Thu, 01 Jan 2099 00:00:00 GMT"})
        )

        assert response.status == HTTPStatus.OK
        response.close()

    def test_single_range(self, static_root: Path, make_request):
        response = StaticFileHandler(static_root)(
            make_request(path="/data.bin", headers={"Range": "bytes=0-99"})
        )

        assert response.status == HTTPStatus.PARTIAL_CONTENT
        assert response.headers["Content-Range"] == "bytes 0-99/1024"
        assert response.headers["Content-Length"] == "100"
        assert body_bytes(response) == bytes(range(100))

    def test_suffix_range(self, static_root: Path, make_request):
        response = StaticFileHandler(static_root)(
            make_request(path="/data.bin", headers={"Range": "bytes=-4"})
        )

        assert response.status == HTTPStatus.PARTIAL_CONTENT
        assert response.headers["Content-Range"] == "bytes 1020-1023/1024"
        assert body_bytes(response) == bytes([252, 253, 254, 255])

    def test_unsatisfiable_range(self, static_root: Path, make_request):
        response = StaticFileHandler(static_root)(
            make_request(path="/data.bin", headers={"Range": "bytes=5000-"})
        )

        assert response.status == HTTPStatus.RANGE_NOT_SATISFIABLE
        assert response.headers["Content-Range"] == "bytes */1024"
        assert response.body == b"Byte range unsatisfiable\n"

    @pytest.mark.parametrize("value", ["bytes=0-1,5-6", "bytes=9-1", "lines=1-2"])
    def test_multiple_or_invalid_ranges_send_whole_file(self, static_root: Path, make_request, value):
        response = StaticFileHandler(static_root)(
            make_request(path="/data.bin", headers={"Range": value})
        )

        assert response.status == HTTPStatus.OK
        assert "Content-Range" not in response.headers
        assert response.headers["Content-Length"] == "1024"
        assert len(body_bytes(response)) == 1024

    def test_empty_file(self, static_root: Path, make_request):
        response = StaticFileHandler(static_root)(make_request(path="/empty.txt"))

        assert response.status == HTTPStatus.OK
        assert response.headers["Content-Length"] == "0"
        assert body_bytes(response) == b""

    def test_filesize_reads_when_stat_reports_zero(self, static_root: Path):
        handler = StaticFileHandler(static_root)

        assert handler.filesize(static_root / "hello.txt", 0) == 14
        assert handler.filesize(static_root / "hello.txt", 99) == 99

    @pytest.mark.skipif(not Path("/proc/self/cmdline").is_file(), reason="needs procfs")
    def test_procfs_file_served_with_real_length(self, make_request):
        handler = StaticFileHandler("/proc/self")
        assert os.stat("/proc/self/cmdline").st_size == 0

        response = handler(make_request(path="/cmdline"))
        data = body_bytes(response)

        assert response.status == HTTPStatus.OK
        assert len(data) > 0
        assert response.headers["Content-Length"] == str(len(data))

    def test_url_prefix(self, static_root: Path, make_request):
        handler = StaticFileHandler(static_root, url_prefix="/assets/")

        response = handler(make_request(path="/assets/hello.txt"))

        assert response.status == HTTPStatus.OK
        assert body_bytes(response) == b"Hello, World!\n"

    def test_path_param(self, static_root: Path, make_request):
        request = make_request(path="/files/sub/nested.css")
        request.path_params["path"] = "sub/nested.css"

        response = StaticFileHandler(static_root)(request)

        assert body_bytes(response) == b"body{}"

    def test_missing_root(self, tmp_path: Path):
        with pytest.raises(ValueError):
            StaticFileHandler(tmp_path / "nope")

    def test_serve_static(self, static_root: Path):
        handler = serve_static(static_root, default_mime="application/octet-stream")

        assert isinstance(handler, StaticFileHandler)
        assert handler.default_mime == "application/octet-stream"
