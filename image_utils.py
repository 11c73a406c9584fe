import base64
from typing import Optional


class ImageValidationError(ValueError):
    """Uploaded image was rejected."""


class ImageProcessor:
    """Validates uploaded room photos and prepares them for the vision model."""

    def __init__(self):
        self.supported_formats = {"jpg", "jpeg", "png", "webp", "gif"}
        self.max_size_mb = 10

    def validate_image_content(self, content: bytes, filename: Optional[str]) -> bytes:
        """Validates image content that has already been read from file."""
        if not content:
            raise ImageValidationError("Empty image file")

        if filename:
            file_extension = filename.split(".")[-1].lower()
            if file_extension not in self.supported_formats:
                raise ImageValidationError(
                    f"Unsupported image format. Supported formats: {', '.join(sorted(self.supported_formats))}"
                )
        elif self.detect_mime_type(content) is None:
            raise ImageValidationError("Unrecognised image content")

        max_size_bytes = self.max_size_mb * 1024 * 1024
        if len(content) > max_size_bytes:
            raise ImageValidationError(
                f"File size ({len(content) / (1024*1024):.2f}MB) exceeds maximum allowed size ({self.max_size_mb}MB)"
            )

        print(f"Image content validated: {filename}, size: {len(content) / (1024*1024):.2f}MB")
        return content

    def detect_mime_type(self, content: bytes) -> Optional[str]:
        if content.startswith(b"\x89PNG\r\n\x1a\n"):
            return "image/png"
        if content.startswith(b"\xff\xd8\xff"):
            return "image/jpeg"
        if content[:6] in (b"GIF87a", b"GIF89a"):
            return "image/gif"
        if content[:4] == b"RIFF" and content[8:12] == b"WEBP":
            return "image/webp"
        return None

    def encode_image_to_base64(self, image_content: bytes) -> str:
        """Converts image bytes to base64 string."""
        return base64.b64encode(image_content).decode('utf-8')

    def encode_image_to_data_url(self, image_content: bytes) -> str:
        mime_type = self.detect_mime_type(image_content) or "image/jpeg"
        return f"data:{mime_type};base64,{self.encode_image_to_base64(image_content)}"


image_processor = ImageProcessor()
