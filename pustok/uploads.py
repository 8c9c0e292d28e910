import io
import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import BinaryIO, NamedTuple, Optional

_EXTENSION = re.compile(r"^\.[A-Za-z0-9]{1,10}$")

MISSING_FILE = "Please provide a file"
BAD_CONTENT_TYPE = "Content type must be png or jpeg"


@dataclass
class Upload:
    """A file handed over by a caller: declared metadata plus a readable stream."""

    file_name: str
    content_type: str
    length: int
    stream: BinaryIO

    @classmethod
    def from_stream(
        cls,
        stream: BinaryIO,
        file_name: str,
        content_type: str,
        length: Optional[int] = None,
    ) -> "Upload":
        if length is None:
            position = stream.tell()
            stream.seek(0, io.SEEK_END)
            length = stream.tell()
            stream.seek(position)
        return cls(file_name=file_name, content_type=content_type, length=length, stream=stream)

    @classmethod
    def from_bytes(cls, data: bytes, file_name: str, content_type: str) -> "Upload":
        return cls(file_name=file_name, content_type=content_type, length=len(data), stream=io.BytesIO(data))

    @property
    def extension(self) -> str:
        # Windows clients may send full paths
        suffix = PurePosixPath(self.file_name.replace("\\", "/")).suffix
        return suffix.lower() if _EXTENSION.match(suffix) else ""


class ImagePolicy(NamedTuple):
    allowed_types: frozenset[str] = frozenset({"image/jpeg", "image/png"})
    max_bytes: int = 2 * 1024 * 1024

    @property
    def size_message(self) -> str:
        megabytes = self.max_bytes / (1024 * 1024)
        return f"File size must be less than {megabytes:g}MB"


DEFAULT_IMAGE_POLICY = ImagePolicy()


class ImageCheck(NamedTuple):
    ok: bool
    reason: Optional[str] = None


def validate_image(upload: Optional[Upload], policy: ImagePolicy = DEFAULT_IMAGE_POLICY) -> ImageCheck:
    if upload is None:
        return ImageCheck(False, MISSING_FILE)
    if upload.content_type not in policy.allowed_types:
        return ImageCheck(False, BAD_CONTENT_TYPE)
    if upload.length > policy.max_bytes:
        return ImageCheck(False, policy.size_message)
    return ImageCheck(True)
