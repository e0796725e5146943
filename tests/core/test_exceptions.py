import warnings

from qc_realtime.core.exceptions import NotificationValidationError


def test_validation_error_builds_without_deprecation_warnings():
    with warnings.catch_warnings():
        warnings.simplefilter("error", DeprecationWarning)
        exc = NotificationValidationError("Title must not be blank", field="title")

    assert exc.status_code == 422
    assert exc.error_code == "invalid_notification"
    assert exc.details == {"field": "title"}
