"""
Direct messages between accounts and the secretariat's communications log.
"""
import csv
import io
import logging
from datetime import date, datetime

from flask import Blueprint, Response, jsonify, request

from auth import current_account, login_required, permission_required
from crud import CrudResource
from exceptions import NotFoundError, PermissionDenied, ValidationError
from forms import CommunicationForm, DATETIME_FORMATS, MessageForm
from listing import ListSpec, apply_filters, apply_search, escape_like, search_term
from models import Communication, Guardian, Message, Student, Teacher, UserAccount, db

logger = logging.getLogger(__name__)

messaging_bp = Blueprint('messaging', __name__, url_prefix='/api')

CSV_COLUMNS = (
    ('id', 'ID'),
    ('title', 'Titel'),
    ('type', 'Type'),
    ('status', 'Status'),
    ('priority', 'Prioriteit'),
    ('recipient_type', 'Ontvangers'),
    ('recipient_count', 'Aantal ontvangers'),
    ('scheduled_date', 'Gepland op'),
    ('sent_date', 'Verzonden op'),
    ('created_by', 'Aangemaakt door'),
    ('created_at', 'Aangemaakt op'),
)


def account_name(account_id, role):
    account = db.session.get(UserAccount, account_id)
    if account is None or account.role != role:
        return 'Onbekend'
    return account.display_name()


def message_dict(message):
    data = message.to_dict()
    data['senderName'] = account_name(message.sender_id, message.sender_role)
    data['receiverName'] = account_name(message.receiver_id, message.receiver_role)
    return data


def require_owner(account_id, role):
    """Only the owner of a mailbox (or an administrator) may read it"""
    account = current_account()
    if account.role == 'admin':
        return
    if account.id != account_id or account.role != role:
        raise PermissionDenied('U heeft geen toegang tot deze berichten')


def parse_since(value):
    for fmt in DATETIME_FORMATS:
        try:
            return datetime.strptime(value.rstrip('Z'), fmt)
        except ValueError:
            continue
    raise ValidationError(f"Ongeldige datum voor 'since': {value}")


def mailbox(query):
    term = search_term(request.args)
    if term:
        pattern = f"%{escape_like(term)}%"
        query = query.filter(db.or_(
            Message.title.ilike(pattern, escape='\\'),
            Message.content.ilike(pattern, escape='\\'),
        ))
    since = request.args.get('since')
    if since:
        query = query.filter(Message.sent_at > parse_since(since))
    messages = query.order_by(Message.sent_at.desc(), Message.id.desc()).all()
    return jsonify([message_dict(message) for message in messages])


def get_message_or_404(message_id):
    message = db.session.get(Message, message_id)
    if message is None:
        raise NotFoundError('Bericht niet gevonden')
    return message


def require_participant(message):
    account = current_account()
    if message.is_addressed_to(account.id, account.role) or message.is_sent_by(account.id, account.role):
        return account
    if account.role == 'admin':
        return account
    raise PermissionDenied('U heeft geen toegang tot dit bericht')


@messaging_bp.route('/messages/receiver/<int:account_id>/<role>')
@login_required
def inbox(account_id, role):
    require_owner(account_id, role)
    return mailbox(Message.query.filter_by(receiver_id=account_id, receiver_role=role))


@messaging_bp.route('/messages/sender/<int:account_id>/<role>')
@login_required
def sent_messages(account_id, role):
    require_owner(account_id, role)
    return mailbox(Message.query.filter_by(sender_id=account_id, sender_role=role))


@messaging_bp.route('/messages/receivers/<int:account_id>/<role>')
@login_required
def possible_receivers(account_id, role):
    require_owner(account_id, role)
    accounts = UserAccount.query.filter(
        UserAccount.is_active.is_(True),
        db.not_(db.and_(UserAccount.id == account_id, UserAccount.role == role)),
    ).order_by(UserAccount.role, UserAccount.email).all()
    return jsonify([{'id': account.id, 'role': account.role, 'name': account.display_name()} for account in accounts])


@messaging_bp.route('/messages/unread/<int:account_id>/<role>')
@login_required
def unread_summary(account_id, role):
    require_owner(account_id, role)
    unread = Message.query.filter_by(receiver_id=account_id, receiver_role=role, is_read=False) \
        .order_by(Message.sent_at.desc()).all()
    return jsonify({'count': len(unread), 'messages': [message_dict(message) for message in unread]})


@messaging_bp.route('/messages/<int:message_id>')
@login_required
def open_message(message_id):
    message = get_message_or_404(message_id)
    account = require_participant(message)

    context = request.args.get('context', 'inbox')
    if context not in ('inbox', 'sent'):
        raise ValidationError("context moet 'inbox' of 'sent' zijn")
    # Opening from the sent view never changes read state
    if context == 'inbox' and message.is_addressed_to(account.id, account.role):
        if message.mark_read():
            db.session.commit()
            logger.info("Message %s read by account %s", message.id, account.id)
    return jsonify(message_dict(message))


@messaging_bp.route('/messages/<int:message_id>/read', methods=['PATCH'])
@login_required
def mark_read(message_id):
    message = get_message_or_404(message_id)
    account = current_account()
    if not message.is_addressed_to(account.id, account.role):
        raise PermissionDenied('Alleen de ontvanger kan een bericht als gelezen markeren')
    changed = message.mark_read()
    if changed:
        db.session.commit()
    data = message_dict(message)
    data['changed'] = changed
    return jsonify(data)


@messaging_bp.route('/messages', methods=['POST'])
@login_required
def send_message():
    payload = request.get_json(silent=True)
    form = MessageForm.from_payload(payload).validate_or_raise()
    account = current_account()

    receiver = db.session.get(UserAccount, form.receiverId.data)
    if receiver is None or receiver.role != form.receiverRole.data:
        raise ValidationError('Validatiefout', errors=[{'path': 'receiverId', 'message': 'Ontvanger bestaat niet'}])
    if form.parentMessageId.data is not None and db.session.get(Message, form.parentMessageId.data) is None:
        raise ValidationError('Validatiefout', errors=[
            {'path': 'parentMessageId', 'message': 'Oorspronkelijk bericht bestaat niet'}])

    message = Message(
        sender_id=account.id,
        sender_role=account.role,
        receiver_id=receiver.id,
        receiver_role=receiver.role,
        title=form.title.data.strip(),
        content=form.content.data,
        parent_message_id=form.parentMessageId.data,
        attachment_url=form.attachmentUrl.data or None,
        is_read=False,
    )
    db.session.add(message)
    db.session.commit()
    logger.info("Message %s sent from account %s to account %s", message.id, account.id, receiver.id)
    return jsonify(message_dict(message)), 201


@messaging_bp.route('/messages/<int:message_id>/thread')
@login_required
def message_thread(message_id):
    message = get_message_or_404(message_id)
    require_participant(message)

    chain = []
    seen = set()
    while message is not None and message.id not in seen:
        seen.add(message.id)
        chain.append(message_dict(message))
        message = message.parent
    return jsonify(chain)


@messaging_bp.route('/messages/<int:message_id>', methods=['DELETE'])
@login_required
def delete_message(message_id):
    message = get_message_or_404(message_id)
    account = current_account()
    if not (message.is_addressed_to(account.id, account.role) or message.is_sent_by(account.id, account.role)):
        raise PermissionDenied('Alleen afzender of ontvanger kan dit bericht verwijderen')

    # Replies keep existing without their parent
    Message.query.filter_by(parent_message_id=message.id).update({'parent_message_id': None})
    db.session.delete(message)
    db.session.commit()
    logger.info("Message %s deleted by account %s", message_id, account.id)
    return jsonify({'message': 'Bericht verwijderd'})


# Communications
def recipient_count(recipient_type):
    counts = {
        'students': lambda: Student.query.filter_by(status='active').count(),
        'guardians': lambda: Guardian.query.count(),
        'teachers': lambda: Teacher.query.filter(Teacher.is_active.is_(True)).count(),
    }
    if recipient_type == 'all':
        return sum(count() for count in counts.values())
    return counts[recipient_type]()


class CommunicationResource(CrudResource):
    def before_save(self, record, payload, created):
        if created:
            record.created_by = current_account().email
        if record.status == 'scheduled' and record.scheduled_date is None:
            raise ValidationError('Validatiefout', errors=[
                {'path': 'scheduledDate', 'message': 'Geplande datum is verplicht'}])
        if record.status == 'sent' and record.sent_date is None:
            record.sent_date = datetime.utcnow()
            record.recipient_count = recipient_count(record.recipient_type)


communications = CommunicationResource(
    Communication, CommunicationForm, 'communications', 'communications', 'Communicatie',
    ListSpec(
        search_fields=(Communication.title, Communication.message, Communication.created_by),
        filters={
            'type': Communication.type,
            'status': Communication.status,
            'priority': Communication.priority,
            'recipientType': Communication.recipient_type,
        },
        default_order=Communication.created_at.desc(),
    ),
).register(messaging_bp)


@messaging_bp.route('/communications/stats')
@permission_required('communications', 'read')
def communication_stats():
    total = Communication.query.count()
    sent = Communication.query.filter_by(status='sent').count()
    scheduled = Communication.query.filter_by(status='scheduled').count()
    draft = Communication.query.filter_by(status='draft').count()
    recipients = db.session.query(db.func.coalesce(db.func.sum(Communication.recipient_count), 0)).scalar()
    return jsonify({
        'total': total,
        'sent': sent,
        'scheduled': scheduled,
        'draft': draft,
        'totalRecipients': int(recipients),
    })


def _csv_value(value):
    if value is None:
        return ''
    if isinstance(value, (datetime, date)):
        return value.strftime('%Y-%m-%d %H:%M') if isinstance(value, datetime) else value.isoformat()
    return value


@messaging_bp.route('/communications/export')
@permission_required('communications', 'read')
def export_communications():
    spec = communications.list_spec
    query = apply_search(Communication.query, spec.search_fields, search_term(request.args))
    query = apply_filters(query, spec, request.args).order_by(Communication.created_at.desc())

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow([heading for _, heading in CSV_COLUMNS])
    for communication in query.all():
        writer.writerow([_csv_value(getattr(communication, column)) for column, _ in CSV_COLUMNS])

    filename = f"communicatie_export_{date.today().isoformat()}.csv"
    return Response(
        output.getvalue(),
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename={filename}'}
    )


@messaging_bp.route('/communications/<int:record_id>/send', methods=['POST'])
@permission_required('communications', 'update')
def send_communication(record_id):
    communication = communications.get_or_404(record_id)
    if communication.status == 'sent':
        raise ValidationError('Deze communicatie is al verzonden')
    communication.status = 'sent'
    communication.sent_date = datetime.utcnow()
    communication.recipient_count = recipient_count(communication.recipient_type)
    db.session.commit()
    logger.info("Communication %s sent to %d %s", communication.id, communication.recipient_count,
                communication.recipient_type)
    return jsonify(communication.to_dict())
