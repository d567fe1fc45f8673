from models import Room, db


def names(response):
    return sorted(f"{item['firstName']} {item['lastName']}" for item in response.get_json())


def test_search_matches_substring_case_insensitively(admin_client, make_student):
    make_student('Yusuf', 'Bakker')
    make_student('Aisha', 'Yilmaz')
    make_student('Omar', 'El Amrani')

    response = admin_client.get('/api/students?search=YUS')

    assert response.status_code == 200
    assert names(response) == ['Yusuf Bakker']


def test_search_aliases_and_blank_search(admin_client, make_student):
    make_student('Yusuf', 'Bakker')
    make_student('Aisha', 'Yilmaz')

    assert names(admin_client.get('/api/students?searchTerm=yilm')) == ['Aisha Yilmaz']
    assert names(admin_client.get('/api/students?q=bakk')) == ['Yusuf Bakker']
    assert len(admin_client.get('/api/students?search=%20%20').get_json()) == 2


def test_like_wildcards_are_matched_literally(admin_client, make_student):
    make_student('Yusuf', 'Bakker')
    make_student('Aisha', '50%_korting')

    response = admin_client.get('/api/students', query_string={'search': '%_'})

    assert names(response) == ['Aisha 50%_korting']


def test_status_filter_restricts_and_all_restores(admin_client, make_student):
    make_student('Yusuf', 'Bakker', status='active')
    make_student('Aisha', 'Bakker', status='graduated')
    make_student('Omar', 'Yilmaz', status='active')

    active = admin_client.get('/api/students?search=bakker&status=active')
    everyone = admin_client.get('/api/students?search=bakker&status=all')

    assert names(active) == ['Yusuf Bakker']
    assert names(everyone) == ['Aisha Bakker', 'Yusuf Bakker']


def test_guardians_by_relationship_and_name(admin_client, make_guardian):
    make_guardian('Fatima', 'de Vries', relationship='parent')
    make_guardian('Karim', 'DeVries', relationship='guardian')
    make_guardian('Devries', 'Smit', relationship='parent')
    make_guardian('Sara', 'Jansen', relationship='parent')

    response = admin_client.get('/api/guardians?relationship=parent&search=devries')

    assert response.status_code == 200
    assert names(response) == ['Devries Smit']
    for guardian in response.get_json():
        assert guardian['relationship'] == 'parent'
        full_name = f"{guardian['firstName']}{guardian['lastName']}".lower()
        assert 'devries' in full_name


def test_guardian_emergency_contact_filter(admin_client, make_guardian):
    make_guardian('Fatima', 'de Vries', is_emergency_contact=True)
    make_guardian('Sara', 'Jansen', is_emergency_contact=False)

    yes = admin_client.get('/api/guardians?emergencyContact=yes').get_json()
    no = admin_client.get('/api/guardians?emergencyContact=no').get_json()

    assert [g['firstName'] for g in yes] == ['Fatima']
    assert [g['firstName'] for g in no] == ['Sara']
    assert admin_client.get('/api/guardians?emergencyContact=misschien').status_code == 400


def seed_rooms(count):
    for number in range(count):
        db.session.add(Room(name=f'Lokaal {number:02d}', capacity=20, location='Begane grond'))
    db.session.commit()


def test_rooms_without_page_return_plain_list(admin_client):
    seed_rooms(12)

    response = admin_client.get('/api/rooms')

    assert isinstance(response.get_json(), list)
    assert len(response.get_json()) == 12


def test_rooms_pagination_envelope(admin_client):
    seed_rooms(12)

    first = admin_client.get('/api/rooms?page=1').get_json()
    second = admin_client.get('/api/rooms?page=2&limit=10').get_json()

    assert first['totalCount'] == 12
    assert first['totalPages'] == 2
    assert first['currentPage'] == 1
    assert len(first['items']) == 10
    assert [room['name'] for room in second['items']] == ['Lokaal 10', 'Lokaal 11']


def test_page_size_is_capped(admin_client):
    seed_rooms(3)

    body = admin_client.get('/api/rooms?page=1&limit=500').get_json()

    assert body['totalPages'] == 1
    assert len(body['items']) == 3


def test_invalid_page_is_rejected(admin_client):
    assert admin_client.get('/api/rooms?page=0').status_code == 400
    assert admin_client.get('/api/rooms?page=abc').status_code == 400
    assert admin_client.get('/api/rooms?page=1&limit=-5').status_code == 400


def test_integer_filter_values_are_validated(admin_client, make_student):
    make_student()

    assert admin_client.get('/api/students?programId=twee').status_code == 400
