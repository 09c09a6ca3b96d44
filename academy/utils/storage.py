import os
import uuid
import logging
from flask import current_app

logger = logging.getLogger(__name__)


class VideoValidationError(ValueError):
    pass


class VideoStorage:
    """Stores lesson videos on local disk and hands back their public path"""

    def __init__(self, folder, url_prefix='/videos/', allowed_extensions=None, max_size=None):
        self.folder = folder
        self.url_prefix = url_prefix if url_prefix.endswith('/') else url_prefix + '/'
        self.allowed_extensions = {ext.lower() for ext in (allowed_extensions or ())}
        self.max_size = max_size

    @classmethod
    def from_app(cls, app=None):
        config = (app or current_app).config
        return cls(
            folder=config['VIDEO_UPLOAD_FOLDER'],
            url_prefix=config.get('VIDEO_URL_PREFIX', '/videos/'),
            allowed_extensions=config.get('ALLOWED_VIDEO_EXTENSIONS'),
            max_size=config.get('MAX_VIDEO_SIZE'),
        )

    def validate(self, file_storage):
        ext = os.path.splitext(file_storage.filename or '')[1].lower()
        if self.allowed_extensions and ext not in self.allowed_extensions:
            allowed = ' / '.join(sorted(e.lstrip('.').upper() for e in self.allowed_extensions))
            raise VideoValidationError(f'Allowed formats: {allowed}')
        size = _content_length(file_storage)
        if self.max_size is not None and size > self.max_size:
            raise VideoValidationError(f'File too large (max {self.max_size // (1024 * 1024)} MB).')
        return ext

    def save(self, file_storage):
        """Store the upload under a random name; returns the retrievable path"""
        ext = self.validate(file_storage)
        os.makedirs(self.folder, exist_ok=True)
        file_name = uuid.uuid4().hex + ext
        file_storage.save(os.path.join(self.folder, file_name))
        logger.info(f"Stored video {file_storage.filename} as {file_name}")
        return self.url_prefix + file_name

    def delete(self, path):
        if not path or not path.startswith(self.url_prefix):
            return False
        full_path = os.path.join(self.folder, os.path.basename(path))
        if os.path.exists(full_path):
            os.remove(full_path)
            logger.info(f"Deleted video {full_path}")
            return True
        return False


def has_upload(file_storage):
    return file_storage is not None and bool(file_storage.filename)


def _content_length(file_storage):
    stream = file_storage.stream
    position = stream.tell()
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(position)
    return size
