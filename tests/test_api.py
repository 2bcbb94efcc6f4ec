class TestStudentsAPI:
    """Test the /api/v1/students endpoints."""

    def test_root(self, client):
        response = client.get('/')
        assert response.status_code == 200
        assert response.json()['message'] == 'Welcome to Student Records API'

    def test_create_and_get_student(self, client):
        response = client.post('/api/v1/students/', json={
            'name': 'Jack',
            'dob': '2001-04-12',
            'student_group': 'LOTUS'
        })
        assert response.status_code == 201
        created = response.json()
        assert created == {'id': 1, 'name': 'Jack', 'dob': '2001-04-12', 'student_group': 'LOTUS'}

        response = client.get(f"/api/v1/students/{created['id']}")
        assert response.status_code == 200
        assert response.json() == created

    def test_get_missing_student(self, client):
        response = client.get('/api/v1/students/99')
        assert response.status_code == 404
        data = response.json()
        assert data['success'] is False
        assert data['error']['code'] == 'NOT_FOUND'

    def test_batch_create_and_query(self, client):
        response = client.post('/api/v1/students/batch', json=[
            {'name': 'Jack', 'student_group': 'LOTUS'},
            {'name': 'Leslie', 'student_group': 'ROSE'},
            {'name': 'Dana', 'student_group': 'DAISY'},
        ])
        assert response.status_code == 201
        assert [s['id'] for s in response.json()] == [1, 2, 3]

        response = client.get('/api/v1/students/', params={'where': 'group IN (ROSE, DAISY) ORDER BY name'})
        assert response.status_code == 200
        assert [s['name'] for s in response.json()] == ['Dana', 'Leslie']

        response = client.get('/api/v1/students/', params={'skip': 1, 'limit': 1})
        assert [s['name'] for s in response.json()] == ['Leslie']

    def test_invalid_predicate(self, client):
        response = client.get('/api/v1/students/', params={'where': 'colour = RED'})
        assert response.status_code == 400
        assert response.json()['error']['code'] == 'INVALID_QUERY'

    def test_invalid_group_is_rejected(self, client):
        response = client.post('/api/v1/students/', json={'name': 'Jack', 'student_group': 'SUNFLOWER'})
        assert response.status_code == 422
        data = response.json()
        assert data['error']['code'] == 'VALIDATION_ERROR'
        assert 'student_group' in data['error']['details']

    def test_update_student(self, client):
        created = client.post('/api/v1/students/', json={'name': 'Jack', 'student_group': 'LOTUS'}).json()

        response = client.put(f"/api/v1/students/{created['id']}", json={'student_group': 'DAISY'})
        assert response.status_code == 200
        assert response.json()['student_group'] == 'DAISY'
        assert response.json()['name'] == 'Jack'

        response = client.put(f"/api/v1/students/{created['id']}", json={'name': None})
        assert response.status_code == 422
        assert response.json()['error']['code'] == 'VALIDATION_ERROR'
        assert 'name' in response.json()['error']['details']
        assert client.get(f"/api/v1/students/{created['id']}").json()['name'] == 'Jack'

        response = client.put('/api/v1/students/99', json={'name': 'Nobody'})
        assert response.status_code == 404

    def test_delete_student(self, client):
        created = client.post('/api/v1/students/', json={'name': 'Jack'}).json()

        response = client.delete(f"/api/v1/students/{created['id']}")
        assert response.status_code == 204

        assert client.get(f"/api/v1/students/{created['id']}").status_code == 404
        assert client.delete(f"/api/v1/students/{created['id']}").status_code == 404
