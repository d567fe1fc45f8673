import pytest

from models import Message, db


@pytest.fixture
def teacher(login_as):
    return login_as('teacher')


@pytest.fixture
def guardian(login_as):
    return login_as('guardian')


def send(sender, receiver, title='Huiswerk', content='Graag hoofdstuk 3 oefenen.', **extra):
    payload = {
        'receiverId': receiver.account.id,
        'receiverRole': receiver.account.role,
        'title': title,
        'content': content,
    }
    payload.update(extra)
    return sender.post('/api/messages', json=payload)


def test_send_message(teacher, guardian):
    response = send(teacher, guardian)

    assert response.status_code == 201
    body = response.get_json()
    assert body['senderId'] == teacher.account.id
    assert body['senderRole'] == 'teacher'
    assert body['isRead'] is False
    assert body['receiverName'] == 'guardian@mymadrassa.nl'


def test_send_validates_receiver_and_parent(teacher, guardian):
    wrong_role = send(teacher, guardian, receiverRole='student')
    missing_title = send(teacher, guardian, title='')
    bad_parent = send(teacher, guardian, parentMessageId=999)

    assert wrong_role.status_code == 400
    assert missing_title.get_json()['errors'][0]['path'] == 'title'
    assert bad_parent.status_code == 400
    assert bad_parent.get_json()['errors'][0]['path'] == 'parentMessageId'
    assert Message.query.count() == 0


def test_opening_from_inbox_marks_read_once(teacher, guardian):
    message_id = send(teacher, guardian).get_json()['id']

    first = guardian.get(f'/api/messages/{message_id}')
    read_at = first.get_json()['readAt']
    second = guardian.get(f'/api/messages/{message_id}?context=inbox')

    assert first.get_json()['isRead'] is True
    assert read_at is not None
    assert second.get_json()['readAt'] == read_at


def test_opening_from_sent_view_does_not_mark_read(teacher, guardian):
    message_id = send(teacher, guardian).get_json()['id']

    sender_view = teacher.get(f'/api/messages/{message_id}?context=sent')
    sender_inbox_view = teacher.get(f'/api/messages/{message_id}')

    assert sender_view.status_code == 200
    assert sender_inbox_view.status_code == 200
    assert db.session.get(Message, message_id).is_read is False


def test_patch_read_is_idempotent(teacher, guardian):
    message_id = send(teacher, guardian).get_json()['id']

    first = guardian.patch(f'/api/messages/{message_id}/read')
    second = guardian.patch(f'/api/messages/{message_id}/read')
    by_sender = teacher.patch(f'/api/messages/{message_id}/read')

    assert first.get_json()['changed'] is True
    assert second.get_json()['changed'] is False
    assert second.get_json()['readAt'] == first.get_json()['readAt']
    assert by_sender.status_code == 403


def test_unread_summary(teacher, guardian):
    first_id = send(teacher, guardian, title='Eerste').get_json()['id']
    send(teacher, guardian, title='Tweede')
    url = f'/api/messages/unread/{guardian.account.id}/guardian'

    assert guardian.get(url).get_json()['count'] == 2

    guardian.get(f'/api/messages/{first_id}')

    body = guardian.get(url).get_json()
    assert body['count'] == 1
    assert [message['title'] for message in body['messages']] == ['Tweede']


def test_inbox_and_sent_lists(teacher, guardian):
    send(teacher, guardian, title='Rapport')
    send(teacher, guardian, title='Uitje', content='Vrijdag naar het museum')

    inbox = guardian.get(f'/api/messages/receiver/{guardian.account.id}/guardian').get_json()
    sent = teacher.get(f'/api/messages/sender/{teacher.account.id}/teacher').get_json()
    searched = guardian.get(f'/api/messages/receiver/{guardian.account.id}/guardian?search=museum').get_json()

    assert [message['title'] for message in inbox] == ['Uitje', 'Rapport']
    assert len(sent) == 2
    assert [message['title'] for message in searched] == ['Uitje']


def test_other_mailboxes_are_private(teacher, guardian, admin_client):
    send(teacher, guardian)
    url = f'/api/messages/receiver/{guardian.account.id}/guardian'

    assert teacher.get(url).status_code == 403
    assert admin_client.get(url).status_code == 200


def test_since_filter_rejects_garbage(guardian):
    response = guardian.get(f'/api/messages/receiver/{guardian.account.id}/guardian?since=gisteren')

    assert response.status_code == 400


def test_possible_receivers_exclude_self(teacher, guardian):
    receivers = teacher.get(f'/api/messages/receivers/{teacher.account.id}/teacher').get_json()

    assert {receiver['id'] for receiver in receivers} == {guardian.account.id}


def test_reply_thread(teacher, guardian):
    original = send(teacher, guardian, title='Vraag').get_json()
    reply = send(guardian, teacher, title='Re: Vraag', parentMessageId=original['id']).get_json()

    thread = teacher.get(f"/api/messages/{reply['id']}/thread").get_json()

    assert [message['title'] for message in thread] == ['Re: Vraag', 'Vraag']


def test_delete_by_participant_only(teacher, guardian, login_as):
    message_id = send(teacher, guardian).get_json()['id']
    outsider = login_as('student')

    assert outsider.get(f'/api/messages/{message_id}').status_code == 403
    assert outsider.delete(f'/api/messages/{message_id}').status_code == 403
    assert guardian.delete(f'/api/messages/{message_id}').status_code == 200
    assert guardian.get(f'/api/messages/{message_id}').status_code == 404


def test_deleting_parent_keeps_replies(teacher, guardian):
    original = send(teacher, guardian).get_json()
    reply = send(guardian, teacher, title='Re: Huiswerk', parentMessageId=original['id']).get_json()

    teacher.delete(f"/api/messages/{original['id']}")

    kept = db.session.get(Message, reply['id'])
    assert kept is not None
    assert kept.parent_message_id is None
