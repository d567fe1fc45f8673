import pytest

from app import create_app
from auth import hash_password
from models import Guardian, Program, Student, StudentGroup, Teacher, UserAccount, db

PASSWORD = 'Welkom123!'


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_account(app):
    def _make(role='admin', email=None, password=PASSWORD, person_id=None, is_active=True):
        account = UserAccount(
            email=email or f'{role}@mymadrassa.nl',
            role=role,
            password_hash=hash_password(password),
            person_id=person_id,
            is_active=is_active,
        )
        db.session.add(account)
        db.session.commit()
        return account
    return _make


@pytest.fixture
def login_as(app, make_account):
    """Return a fresh test client logged in with a new account of ``role``"""
    def _login(role='admin', **kwargs):
        account = make_account(role, **kwargs)
        client = app.test_client()
        response = client.post('/api/auth/login', json={
            'email': account.email,
            'password': kwargs.get('password', PASSWORD),
        })
        assert response.status_code == 200, response.get_json()
        client.account = account
        return client
    return _login


@pytest.fixture
def admin_client(login_as):
    return login_as('admin')


@pytest.fixture
def make_student(app):
    counter = {'n': 0}

    def _make(first_name='Yusuf', last_name='Bakker', **fields):
        counter['n'] += 1
        fields.setdefault('student_id', f'ST{counter["n"]:04d}')
        student = Student(first_name=first_name, last_name=last_name, **fields)
        db.session.add(student)
        db.session.commit()
        return student
    return _make


@pytest.fixture
def make_guardian(app):
    def _make(first_name='Fatima', last_name='de Vries', relationship='parent', **fields):
        guardian = Guardian(first_name=first_name, last_name=last_name, relationship=relationship, **fields)
        db.session.add(guardian)
        db.session.commit()
        return guardian
    return _make


@pytest.fixture
def make_teacher(app):
    def _make(first_name='Ahmed', last_name='Jansen', email=None, **fields):
        teacher = Teacher(first_name=first_name, last_name=last_name,
                          email=email or f'{first_name.lower()}.{last_name.lower()}@mymadrassa.nl', **fields)
        db.session.add(teacher)
        db.session.commit()
        return teacher
    return _make


@pytest.fixture
def make_group(app):
    def _make(name='1A', capacity=25, **fields):
        group = StudentGroup(name=name, capacity=capacity, **fields)
        db.session.add(group)
        db.session.commit()
        return group
    return _make


@pytest.fixture
def program(app):
    program = Program(name='Koran', code='KOR', duration=4)
    db.session.add(program)
    db.session.commit()
    return program

