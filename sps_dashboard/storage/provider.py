from typing import Optional


class StorageProvider:
    def put_bytes(self, key: str, data: bytes) -> None:
        raise NotImplementedError

    def read_bytes(self, key: str) -> Optional[bytes]:
        raise NotImplementedError
