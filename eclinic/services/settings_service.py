"""
Admin-editable settings that override config defaults
"""
import logging

from flask import current_app

from eclinic.extensions import db
from eclinic.errors import ValidationError
from eclinic.models import SystemSetting
from eclinic.utils.audit import log_audit

logger = logging.getLogger(__name__)

ARCHIVE_RETENTION_KEY = 'archive_retention_months'


def get_setting(key, default=None):
    setting = SystemSetting.query.filter_by(key=key).first()
    return setting.value if setting else default


def set_setting(key, value, user_id=None):
    setting = SystemSetting.query.filter_by(key=key).first()
    old_value = setting.value if setting else None
    if setting is None:
        setting = SystemSetting(key=key, value=str(value), updated_by=user_id)
        db.session.add(setting)
    else:
        setting.value = str(value)
        setting.updated_by = user_id
    db.session.commit()
    log_audit('system_setting', 'update', user_id=user_id, entity_id=key,
              details={'old': old_value, 'new': str(value)})
    return setting


def get_archive_retention_months():
    """Admin override if set and valid, otherwise ARCHIVE_RETENTION_MONTHS."""
    default = current_app.config['ARCHIVE_RETENTION_MONTHS']
    value = get_setting(ARCHIVE_RETENTION_KEY)
    if value is None:
        return default
    try:
        months = int(value)
    except ValueError:
        logger.warning("Ignoring invalid %s setting %r", ARCHIVE_RETENTION_KEY, value)
        return default
    return months if months > 0 else default


def set_archive_retention_months(months, user_id=None):
    try:
        months = int(months)
    except (TypeError, ValueError):
        raise ValidationError('Retention must be a whole number of months')
    if months < 1 or months > 120:
        raise ValidationError('Retention must be between 1 and 120 months')
    set_setting(ARCHIVE_RETENTION_KEY, months, user_id=user_id)
    return months
