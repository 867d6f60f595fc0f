"""
Document storage for applications.

Uploaded documents live outside the database, so a failed transaction
cannot roll them back. `StagedDocuments` records every file it writes and
deletes all of them when the block exits without `commit()`.
"""
import logging
import os
import uuid

from django.core.files.storage import default_storage
from django.utils import timezone
from django.utils.deconstruct import deconstructible

logger = logging.getLogger(__name__)


def build_document_name(bucket, original_name):
    """documents/<bucket>/<YYYY>/<MM>/<random hex>.<ext>"""
    ext = os.path.splitext(original_name or '')[1].lower()
    now = timezone.localtime()
    return f"documents/{bucket}/{now:%Y}/{now:%m}/{uuid.uuid4().hex}{ext}"


@deconstructible
class DocumentPath:
    """`upload_to` callable that places a file in its bucket under a unique name."""

    def __init__(self, bucket):
        self.bucket = bucket

    def __call__(self, instance, filename):
        return build_document_name(self.bucket, filename)

    def __eq__(self, other):
        return isinstance(other, DocumentPath) and self.bucket == other.bucket


def delete_document(name, storage=None):
    """
    Best-effort removal of a stored document.
    Returns False (and logs) instead of raising when the file cannot be removed.
    """
    if not name:
        return True
    storage = storage or default_storage
    try:
        storage.delete(name)
    except OSError:
        logger.exception("Could not delete document %s", name)
        return False
    return True


class StagedDocuments:
    """
    Usage:

        with StagedDocuments() as staged:
            with transaction.atomic():
                name = staged.store('birth_certificates', upload)
                ...
            staged.commit()

    Any exit before `commit()` removes every file stored through this object.
    """

    def __init__(self, storage=None):
        self.storage = storage or default_storage
        self.names = []
        self.committed = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if not self.committed:
            self.rollback()
        return False

    def store(self, bucket, upload):
        if hasattr(upload, 'seek'):
            upload.seek(0)
        name = self.storage.save(build_document_name(bucket, upload.name), upload)
        self.names.append(name)
        return name

    def commit(self):
        self.committed = True

    def rollback(self):
        if self.names:
            logger.warning("Discarding %d staged document(s)", len(self.names))
        for name in self.names:
            delete_document(name, storage=self.storage)
        self.names = []
