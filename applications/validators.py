from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import FileExtensionValidator
from django.utils.deconstruct import deconstructible

DOCUMENT_EXTENSIONS = ['pdf', 'jpg', 'jpeg', 'png']

validate_document_extension = FileExtensionValidator(allowed_extensions=DOCUMENT_EXTENSIONS)


@deconstructible
class ExactLengthValidator:
    """Value must be exactly `length` characters long."""
    message = "Must be exactly %(length)d characters (got %(actual)d)."
    code = 'exact_length'

    def __init__(self, length):
        self.length = length

    def __call__(self, value):
        actual = len(str(value))
        if actual != self.length:
            raise ValidationError(
                self.message,
                code=self.code,
                params={'length': self.length, 'actual': actual},
            )

    def __eq__(self, other):
        return isinstance(other, ExactLengthValidator) and self.length == other.length


def validate_document_size(upload):
    limit = settings.KK_MAX_DOCUMENT_SIZE
    if upload.size > limit:
        raise ValidationError(
            "File is too large (%(size)d bytes); the limit is %(limit)d bytes.",
            code='file_too_large',
            params={'size': upload.size, 'limit': limit},
        )


def validate_document(upload):
    validate_document_extension(upload)
    validate_document_size(upload)
