"""
User account management: CRUD, bulk creation from people records and stats.

Passwords are only ever stored as bcrypt hashes. When an administrator does
not choose a password a random one is generated and returned once, in the
response that created it.
"""
import logging
import re
import secrets

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import and_, or_

from auth import current_account, hash_password, permission_required
from crud import CrudResource
from exceptions import ConflictError, ValidationError
from forms import AccountForm
from listing import ListSpec, apply_listing, escape_like, search_term
from models import PERSON_MODELS, UserAccount, db

logger = logging.getLogger(__name__)

accounts_bp = Blueprint('accounts', __name__, url_prefix='/api')

DEFAULT_EMAIL_TEMPLATE = '{firstName}.{lastName}@{domain}'


def generate_password():
    return secrets.token_urlsafe(12)


def email_from_template(template, person):
    email = template.replace('{firstName}', person.first_name.lower())
    email = email.replace('{lastName}', person.last_name.lower())
    return re.sub(r'\s+', '', email)


def person_search(term):
    """Criteria matching accounts whose linked person's name contains ``term``"""
    pattern = f"%{escape_like(term)}%"
    criteria = [UserAccount.email.ilike(pattern, escape='\\')]
    for role, model in PERSON_MODELS.items():
        ids = db.session.query(model.id).filter(or_(
            model.first_name.ilike(pattern, escape='\\'),
            model.last_name.ilike(pattern, escape='\\'),
        ))
        criteria.append(and_(UserAccount.role == role, UserAccount.person_id.in_(ids)))
    return or_(*criteria)


def validate_person(role, person_id):
    if person_id is None:
        return None
    model = PERSON_MODELS.get(role)
    if model is None:
        raise ValidationError('Validatiefout', errors=[
            {'path': 'personId', 'message': 'Deze rol kan niet aan een persoon gekoppeld worden'}])
    person = db.session.get(model, person_id)
    if person is None:
        raise ValidationError('Validatiefout', errors=[{'path': 'personId', 'message': 'Persoon niet gevonden'}])
    return person


class AccountResource(CrudResource):
    def list_view(self):
        query = self.base_query()
        term = search_term(request.args)
        if term:
            query = query.filter(person_search(term))
        return jsonify(apply_listing(query, self.list_spec, request.args, self.serialize))

    def create_view(self):
        payload = self.payload()
        form = self.form.from_payload(payload).validate_or_raise()
        validate_person(form.role.data, form.personId.data)

        password = form.password.data
        temporary = None
        if not password:
            password = temporary = generate_password()

        account = UserAccount(
            email=form.email.data.strip().lower(),
            role=form.role.data,
            person_id=form.personId.data,
            password_hash=hash_password(password),
            is_active=form.isActive.data if 'isActive' in payload else True,
        )
        self.check_unique(account)
        db.session.add(account)
        self.commit()
        logger.info("Created account %s (%s)", account.id, account.role)

        data = account.to_dict()
        if temporary:
            data['temporaryPassword'] = temporary
        return jsonify(data), 201

    def update_view(self, record_id):
        account = self.get_or_404(record_id)
        payload = self.payload()
        form = self.form.from_payload(payload, existing=account).validate_or_raise()
        validate_person(form.role.data, form.personId.data)

        account.email = form.email.data.strip().lower()
        account.role = form.role.data
        account.person_id = form.personId.data
        account.is_active = form.isActive.data
        # An empty password keeps the current one
        if form.password.data:
            account.password_hash = hash_password(form.password.data)
        self.check_unique(account)
        self.commit()
        logger.info("Updated account %s", account.id)
        return jsonify(account.to_dict())

    def before_delete(self, record):
        if record.id == current_account().id:
            raise ConflictError('U kunt uw eigen account niet verwijderen')


accounts = AccountResource(
    UserAccount, AccountForm, 'accounts', 'accounts', 'Account',
    ListSpec(
        filters={'role': UserAccount.role},
        bool_filters={'isActive': UserAccount.is_active},
        default_order=UserAccount.email,
    ),
    unique_fields=('email',),
).register(accounts_bp)


@accounts_bp.route('/accounts/stats')
@permission_required('accounts', 'read')
def account_stats():
    rows = db.session.query(UserAccount.role, db.func.count(UserAccount.id)).group_by(UserAccount.role).all()
    by_role = {role: 0 for role in UserAccount.ROLES}
    by_role.update({role: count for role, count in rows})
    total = sum(by_role.values())
    active = UserAccount.query.filter(UserAccount.is_active.is_(True)).count()
    return jsonify({'total': total, 'active': active, 'inactive': total - active, 'byRole': by_role})


@accounts_bp.route('/accounts/bulk', methods=['POST'])
@permission_required('accounts', 'create')
def bulk_create_accounts():
    payload = request.get_json(silent=True) or {}
    role = payload.get('role')
    person_ids = payload.get('personIds')
    if role not in UserAccount.PERSON_ROLES:
        raise ValidationError('Validatiefout', errors=[{'path': 'role', 'message': 'Kies student, teacher of guardian'}])
    if not isinstance(person_ids, list) or not person_ids:
        raise ValidationError('Validatiefout', errors=[{'path': 'personIds', 'message': 'Selecteer minimaal één persoon'}])

    template = payload.get('emailTemplate') or DEFAULT_EMAIL_TEMPLATE.replace(
        '{domain}', current_app.config['ACCOUNT_EMAIL_DOMAIN'])
    model = PERSON_MODELS[role]

    results = []
    for person_id in person_ids:
        result = {'personId': person_id}
        # JSON true would otherwise load person 1
        valid_id = isinstance(person_id, int) and not isinstance(person_id, bool)
        person = db.session.get(model, person_id) if valid_id else None
        if person is None:
            results.append(dict(result, status='failed', reason='Persoon niet gevonden'))
            continue

        email = email_from_template(template, person)
        result['email'] = email
        form = AccountForm.from_payload({'email': email, 'role': role, 'personId': person_id})
        if not form.validate():
            results.append(dict(result, status='failed', reason='Ongeldig e-mailadres'))
            continue
        if UserAccount.query.filter_by(email=email).first() is not None:
            results.append(dict(result, status='failed', reason='E-mailadres is al in gebruik'))
            continue
        if UserAccount.query.filter_by(role=role, person_id=person_id).first() is not None:
            results.append(dict(result, status='failed', reason='Persoon heeft al een account'))
            continue

        password = generate_password()
        account = UserAccount(email=email, role=role, person_id=person_id, password_hash=hash_password(password))
        db.session.add(account)
        db.session.flush()
        results.append(dict(result, status='created', accountId=account.id, temporaryPassword=password))

    db.session.commit()
    created = sum(1 for result in results if result['status'] == 'created')
    logger.info("Bulk account creation: %d created, %d failed", created, len(results) - created)
    return jsonify({
        'message': f"{created} account(s) aangemaakt",
        'created': created,
        'failed': len(results) - created,
        'results': results,
    }), 201 if created else 200


@accounts_bp.route('/accounts/<int:record_id>/reset-password', methods=['POST'])
@permission_required('accounts', 'update')
def reset_password(record_id):
    account = accounts.get_or_404(record_id)
    password = generate_password()
    account.password_hash = hash_password(password)
    db.session.commit()
    logger.info("Password reset for account %s", account.id)
    return jsonify({'message': 'Wachtwoord opnieuw ingesteld', 'temporaryPassword': password})

