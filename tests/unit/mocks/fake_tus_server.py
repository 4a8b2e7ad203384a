import hashlib

import httpx
import respx

from tus_client.codec import decode_checksum_header
from tus_client.codec import decode_metadata_header


class FakeTusServer:
    """In-memory tus server answering through a respx router, used in unit tests."""

    def __init__(self, router: respx.MockRouter, base_url: str = "http://tus.test", api_path: str = "/files") -> None:
        self.base_url = base_url.rstrip("/")
        self.api_path = api_path
        self.uploads: dict[str, dict] = {}
        self.calls: list[tuple[str, str]] = []

        host = httpx.URL(self.base_url).host
        item_pattern = rf"^{api_path}/[^/]+$"
        self.head_route = router.route(method="HEAD", host=host, path__regex=item_pattern).mock(side_effect=self._head)
        self.post_route = router.route(method="POST", host=host, path=api_path).mock(side_effect=self._post)
        self.patch_route = router.route(method="PATCH", host=host, path__regex=item_pattern).mock(
            side_effect=self._patch
        )
        self.delete_route = router.route(method="DELETE", host=host, path__regex=item_pattern).mock(
            side_effect=self._delete
        )

    def data(self, key: str) -> bytes:
        return bytes(self.uploads[key]["data"])

    def preload(self, key: str, data: bytes, length: int) -> None:
        """Pretend an earlier session already sent ``data``."""
        self.uploads[key] = {
            "length": length,
            "data": bytearray(data),
            "concat": None,
            "metadata": {},
            "checksum": None,
        }

    @staticmethod
    def _key(request: httpx.Request) -> str:
        return request.url.path.rsplit("/", 1)[1]

    def _location(self, key: str) -> str:
        return f"{self.base_url}{self.api_path}/{key}"

    def _head(self, request: httpx.Request) -> httpx.Response:
        key = self._key(request)
        self.calls.append(("HEAD", key))
        upload = self.uploads.get(key)
        if upload is None:
            return httpx.Response(404)
        return httpx.Response(
            200,
            headers={"Upload-Offset": str(len(upload["data"])), "Upload-Length": str(upload["length"])},
        )

    def _post(self, request: httpx.Request) -> httpx.Response:
        key = request.headers["Upload-Key"]
        self.calls.append(("POST", key))
        concat = request.headers.get("Upload-Concat")

        if concat and concat.startswith("final;"):
            partial_keys = concat[len("final;") :].split(" ")
            data = bytearray()
            for partial_key in partial_keys:
                partial = self.uploads.get(partial_key)
                if partial is None or partial["concat"] != "partial" or len(partial["data"]) != partial["length"]:
                    return httpx.Response(400, text=f"Partial upload {partial_key} is not complete")
                data.extend(partial["data"])
            self.uploads[key] = {
                "length": len(data),
                "data": data,
                "concat": "final",
                "metadata": decode_metadata_header(request.headers.get("Upload-Metadata", "")),
                "checksum": request.headers.get("Upload-Checksum"),
            }
            return httpx.Response(201, headers={"Location": self._location(key)})

        self.uploads[key] = {
            "length": int(request.headers["Upload-Length"]),
            "data": bytearray(request.content),
            "concat": concat,
            "metadata": decode_metadata_header(request.headers.get("Upload-Metadata", "")),
            "checksum": request.headers.get("Upload-Checksum"),
        }
        headers = {"Location": self._location(key)}
        if request.content:
            headers["Upload-Offset"] = str(len(request.content))
        return httpx.Response(201, headers=headers)

    def _patch(self, request: httpx.Request) -> httpx.Response:
        key = self._key(request)
        self.calls.append(("PATCH", key))
        upload = self.uploads.get(key)
        if upload is None:
            return httpx.Response(404)
        if request.headers.get("Content-Type") != "application/offset+octet-stream":
            return httpx.Response(415)
        if int(request.headers["Upload-Offset"]) != len(upload["data"]):
            return httpx.Response(409, text="Upload-Offset mismatch")

        upload["data"].extend(request.content)
        if len(upload["data"]) > upload["length"]:
            return httpx.Response(416)

        if len(upload["data"]) == upload["length"] and upload["checksum"]:
            algorithm, expected = decode_checksum_header(upload["checksum"])
            if hashlib.new(algorithm, bytes(upload["data"])).digest() != expected:
                return httpx.Response(460, text="Checksum mismatch")

        return httpx.Response(204, headers={"Upload-Offset": str(len(upload["data"]))})

    def _delete(self, request: httpx.Request) -> httpx.Response:
        key = self._key(request)
        self.calls.append(("DELETE", key))
        if self.uploads.pop(key, None) is None:
            return httpx.Response(404)
        return httpx.Response(204)
