"""
Application settings stored per section in the school_settings table.
"""
import logging

from flask import Blueprint, current_app, jsonify, request

from auth import current_account, has_permission, login_required, permission_required
from exceptions import NotFoundError, ValidationError
from models import SchoolSetting, db

logger = logging.getLogger(__name__)

settings_bp = Blueprint('settings', __name__, url_prefix='/api/settings')

DEFAULTS = {
    'general': {
        'language': 'nl',
        'theme': 'light',
        'dateFormat': 'dd-MM-yyyy',
        'timeFormat': '24h',
    },
    'notifications': {
        'dailySummary': True,
        'weeklyReport': True,
        'studentAlerts': True,
        'systemAlerts': False,
        'browserNotifications': True,
        'soundAlerts': True,
    },
    'security': {
        'sessionTimeout': 60,  # minutes
        'passwordMinLength': 8,
    },
    'school': {
        'schoolName': '',  # falls back to the SCHOOL_NAME config value
        'contactEmail': 'info@mymadrassa.nl',
        'phone': '',
        'address': '',
    },
}

# Sections every logged-in user may see; the rest is for administrators
PERSONAL_SECTIONS = ('general', 'notifications')


def section_defaults(section):
    values = dict(DEFAULTS.get(section, {}))
    if section == 'school' and not values['schoolName']:
        values['schoolName'] = current_app.config.get('SCHOOL_NAME', '')
    return values


def section_values(section):
    values = section_defaults(section)
    for setting in SchoolSetting.query.filter_by(section=section).all():
        if setting.key in values:
            values[setting.key] = setting.get_value()
    return values


def get_setting(section, key):
    setting = SchoolSetting.query.filter_by(section=section, key=key).first()
    if setting is not None:
        return setting.get_value()
    return section_defaults(section).get(key)


def validate_section(section, payload):
    if section not in DEFAULTS:
        raise NotFoundError(f"Onbekende instellingensectie '{section}'")
    if not isinstance(payload, dict):
        raise ValidationError('Ongeldige gegevens: JSON object verwacht.')

    errors = []
    for key, value in payload.items():
        if key not in DEFAULTS[section]:
            errors.append({'path': key, 'message': 'Onbekende instelling'})
        elif type(value) is not type(DEFAULTS[section][key]):
            errors.append({'path': key, 'message': 'Ongeldig type voor deze instelling'})
    if errors:
        raise ValidationError('Validatiefout', errors=errors)


def save_section(section, payload):
    validate_section(section, payload)
    for key, value in payload.items():
        setting = SchoolSetting.query.filter_by(section=section, key=key).first()
        if setting is None:
            setting = SchoolSetting(section=section, key=key)
            db.session.add(setting)
        setting.set_value(value)
    db.session.commit()
    return section_values(section)


@settings_bp.route('', methods=['GET'])
@login_required
def get_settings():
    account = current_account()
    sections = DEFAULTS.keys()
    if not has_permission(account.role, 'settings', 'read'):
        sections = PERSONAL_SECTIONS
    return jsonify({section: section_values(section) for section in sections})


@settings_bp.route('/<section>', methods=['PUT'])
@permission_required('settings', 'update')
def update_settings(section):
    values = save_section(section, request.get_json(silent=True))
    logger.info("Settings section %s updated by account %s", section, current_account().id)
    return jsonify({'message': 'Instellingen opgeslagen', section: values})
