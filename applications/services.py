"""
Application workflow: creation, cancellation and administrator transitions.

Every public function raises a subclass of `ApplicationError` for
conditions the caller should report; anything else is a bug or an
infrastructure fault.
"""
import logging

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.db import DatabaseError, IntegrityError, transaction
from django_fsm import TransitionNotAllowed, can_proceed, has_transition_perm

from .exceptions import (
    ApplicationError,
    CreationFailed,
    DuplicateActiveApplication,
    Forbidden,
    InvalidFormat,
    InvalidTransition,
    NotFound,
    SequenceExhausted,
    ValidationFailed,
)
from .models import ApplicationLog, FamilyMember, KKApplication, MonthlySequence
from .storage import StagedDocuments, delete_document
from .validators import validate_document

logger = logging.getLogger(__name__)

FAMILY_CARD_NUMBER_LENGTH = 16
MAX_NUMBER_ATTEMPTS = 3

APPLICATION_FIELDS = (
    'no_kk', 'head_name', 'head_nik', 'address', 'rt', 'rw',
    'province', 'regency', 'district', 'sub_district', 'postal_code',
)

MEMBER_FIELDS = (
    'name', 'nik', 'sex', 'birthplace', 'birthdate', 'religion', 'education',
    'occupation', 'marital_status', 'relationship', 'citizenship',
)

ACTION_LOGS = {
    KKApplication.Action.VERIFY: ApplicationLog.Action.VERIFIED,
    KKApplication.Action.SEND_TO_PRINTING: ApplicationLog.Action.PRINTING,
    KKApplication.Action.COMPLETE: ApplicationLog.Action.COMPLETED,
    KKApplication.Action.REJECT: ApplicationLog.Action.REJECTED,
}


def document_bucket(field):
    """Storage bucket declared by the document field's `upload_to`."""
    return KKApplication._meta.get_field(field).upload_to.bucket


def log_application_action(application, action, by_user=None, remarks='', from_status='', to_status=''):
    """Creates an ApplicationLog entry that outlives the application row."""
    return ApplicationLog.objects.create(
        application=application,
        application_number=application.application_number,
        action=action,
        by_user=by_user,
        from_status=from_status or '',
        to_status=to_status or '',
        remarks=remarks or '',
    )


def get_active_application(owner):
    return KKApplication.objects.filter(
        owner=owner,
        status__in=KKApplication.ACTIVE_STATUSES
    ).first()


def _merge_errors(errors, field, messages):
    errors.setdefault(field, []).extend(messages)


def validate_submission(data, members, documents):
    """
    Checks every field rule for a new application and returns a dict of
    field -> messages. Member errors are keyed as 'members-<index>-<field>'.
    """
    errors = {}

    application = KKApplication(**{f: data.get(f, '') for f in APPLICATION_FIELDS})
    try:
        application.full_clean(exclude=['owner', 'application_number', 'status'] + list(KKApplication.DOCUMENT_FIELDS))
    except ValidationError as e:
        for field, messages in e.message_dict.items():
            _merge_errors(errors, field, messages)

    if data.get('consent') is not True:
        _merge_errors(errors, 'consent', ["You must confirm that the submitted data is correct."])

    if not members:
        _merge_errors(errors, 'members', ["At least one family member is required."])
    for index, member_data in enumerate(members or []):
        member = FamilyMember(**{f: member_data.get(f) for f in MEMBER_FIELDS if f in member_data})
        try:
            member.full_clean(exclude=['application'])
        except ValidationError as e:
            for field, messages in e.message_dict.items():
                _merge_errors(errors, f"members-{index}-{field}", messages)

    documents = documents or {}
    for field in KKApplication.DOCUMENT_FIELDS:
        upload = documents.get(field)
        if not upload:
            if field in KKApplication.REQUIRED_DOCUMENTS:
                _merge_errors(errors, field, ["This document is required."])
            continue
        try:
            validate_document(upload)
        except ValidationError as e:
            _merge_errors(errors, field, e.messages)

    unknown = set(documents) - set(KKApplication.DOCUMENT_FIELDS)
    for field in sorted(unknown):
        _merge_errors(errors, field, ["Unknown document type."])

    return errors


def create_application(owner, data, members, documents):
    """
    Validates and persists a new application in PENDING.

    `data` holds the household fields plus `consent`, `members` is a list of
    dicts (one per family member) and `documents` maps document field names
    to uploaded files. Stored documents are removed again if anything fails
    before the record is committed.
    """
    errors = validate_submission(data, members, documents)
    if errors:
        raise ValidationFailed(errors)

    try:
        with StagedDocuments() as staged:
            with transaction.atomic():
                # Lock the owner row so two submissions by the same user are serialized.
                get_user_model().objects.select_for_update().filter(pk=owner.pk).first()

                if get_active_application(owner):
                    raise DuplicateActiveApplication()

                application = KKApplication(
                    owner=owner,
                    consent=True,
                    status=KKApplication.Status.PENDING,
                    **{f: data[f] for f in APPLICATION_FIELDS}
                )
                for field, upload in documents.items():
                    if upload:
                        getattr(application, field).name = staged.store(document_bucket(field), upload)

                _save_with_new_number(application)

                FamilyMember.objects.bulk_create([
                    FamilyMember(application=application, **{f: m[f] for f in MEMBER_FIELDS if f in m})
                    for m in members
                ])

                log_application_action(
                    application,
                    ApplicationLog.Action.CREATED,
                    by_user=owner,
                    to_status=application.status,
                )
            staged.commit()
    except SequenceExhausted:
        logger.error("Application numbers exhausted; creation for user %s refused", owner.pk)
        raise
    except ApplicationError:
        raise
    except (DatabaseError, OSError) as e:
        logger.exception("Creating application for user %s failed", owner.pk)
        raise CreationFailed() from e

    logger.info("Application %s created for user %s", application.application_number, owner.pk)
    return application


def _save_with_new_number(application):
    """
    Reserves a number and inserts the row. A collision on the unique number
    (e.g. a counter seeded behind existing data) reserves the next one.
    """
    for attempt in range(1, MAX_NUMBER_ATTEMPTS + 1):
        application.application_number = MonthlySequence.reserve()
        try:
            with transaction.atomic():
                application.save()
            return
        except IntegrityError:
            if KKApplication.objects.filter(application_number=application.application_number).exists():
                logger.warning(
                    "Application number %s already taken (attempt %d of %d)",
                    application.application_number, attempt, MAX_NUMBER_ATTEMPTS
                )
                application.pk = None
                continue
            raise
    raise CreationFailed("Could not reserve a unique application number. Please try again.")


def cancel_application(requester, application_id):
    """
    Owner withdraws a PENDING application. The record is deleted; its
    documents are removed afterwards on a best-effort basis.
    """
    with transaction.atomic():
        application = KKApplication.objects.select_for_update().filter(
            pk=application_id,
            owner=requester
        ).first()

        if application is None:
            raise NotFound()

        if not application.is_cancellable:
            raise InvalidTransition(
                f"Only pending applications can be cancelled (current status: {application.get_status_display()})."
            )

        document_names = application.document_names()
        number = application.application_number

        log_application_action(
            application,
            ApplicationLog.Action.CANCELLED,
            by_user=requester,
            from_status=application.status,
            remarks="Cancelled by applicant",
        )
        application.delete()

    failed = [name for name in document_names if not delete_document(name)]
    if failed:
        logger.warning("Application %s cancelled but %d document(s) could not be removed", number, len(failed))
    else:
        logger.info("Application %s cancelled by user %s", number, requester.pk)

    return number


def transition_application(actor, application_id, action, note=None):
    """
    Applies an administrator action. The legal moves are the
    `@transition` methods on KKApplication; anything else raises
    InvalidTransition and leaves the record untouched.
    """
    if not (actor and actor.is_authenticated and actor.is_administrator):
        raise Forbidden()

    if action not in KKApplication.Action.values:
        raise InvalidTransition(f"Unknown action '{action}'.")

    with transaction.atomic():
        application = KKApplication.objects.select_for_update().filter(pk=application_id).first()
        if application is None:
            raise NotFound()

        method = getattr(application, action)
        if not can_proceed(method):
            raise InvalidTransition(
                f"Cannot {KKApplication.Action(action).label.lower()} an application "
                f"in status {application.get_status_display()}."
            )
        if not has_transition_perm(method, actor):
            raise Forbidden()

        from_status = application.status
        try:
            method()
        except TransitionNotAllowed as e:
            raise InvalidTransition() from e

        if note:
            application.note = note
        application.save()

        log_application_action(
            application,
            ACTION_LOGS[action],
            by_user=actor,
            from_status=from_status,
            to_status=application.status,
            remarks=note,
        )

    logger.info(
        "Application %s moved %s -> %s by %s",
        application.application_number, from_status, application.status, actor.pk
    )
    return application


def check_application_number_availability(candidate):
    """
    Returns True when an application with this 16-character family card
    number (No. KK) already exists. Malformed input fails without a query.
    """
    candidate = candidate if isinstance(candidate, str) else ''
    if len(candidate) != FAMILY_CARD_NUMBER_LENGTH:
        raise InvalidFormat()
    return KKApplication.objects.filter(no_kk=candidate).exists()
