from datetime import datetime

from eclinic.models import Appointment, AppointmentStatus


def booking_body(nurse, day, at='09:00', reason='Headache'):
    return {'nurseId': nurse.id, 'appointmentDate': f'{day.isoformat()}T{at}', 'reason': reason}


class TestAuth:
    def test_login_me_logout(self, client, factory, login):
        nurse = factory.nurse()

        body = login(nurse.user)
        assert body['success'] is True
        assert body['data']['role'] == 'nurse'
        assert body['token_type'] == 'bearer'

        me = client.get('/api/auth/me')
        assert me.status_code == 200
        assert me.get_json()['data']['nurse_id'] == nurse.id

        assert client.post('/api/auth/logout').status_code == 200
        assert client.get('/api/auth/me').status_code == 401

    def test_bad_password(self, client, factory):
        user = factory.student().user
        response = client.post('/api/auth/login', json={'email': user.email, 'password': 'nope'})
        assert response.status_code == 401
        assert response.get_json() == {'success': False, 'error': 'Invalid email or password'}

    def test_inactive_user(self, client, factory):
        user = factory.admin(is_active=False)
        response = client.post('/api/auth/login', json={'email': user.email, 'password': 'secret123'})
        assert response.status_code == 403

    def test_bearer_token(self, app, factory, login):
        student = factory.student()
        token = login(student.user)['access_token']

        fresh = app.test_client()
        response = fresh.get('/api/auth/me', headers={'Authorization': f'Bearer {token}'})
        assert response.status_code == 200
        assert response.get_json()['data']['student_id'] == student.id

    def test_role_enforced(self, client, factory, login):
        assert client.get('/api/nurse/appointments').status_code == 401

        login(factory.student().user)
        response = client.get('/api/nurse/appointments')
        assert response.status_code == 403
        assert response.get_json()['success'] is False


class TestBookingFlow:
    def test_nurse_sets_availability_students_book(self, client, factory, login, future_day):
        nurse = factory.nurse()
        first = factory.student()
        second = factory.student()
        factory.assign(nurse, first)
        factory.assign(nurse, second)

        login(nurse.user)
        created = client.post('/api/nurse/availability', json={
            'date': future_day.isoformat(), 'startTime': '09:00', 'endTime': '10:00', 'maxPatients': 1,
        })
        assert created.status_code == 201
        slot_id = created.get_json()['data']['id']

        duplicate = client.post('/api/nurse/availability', json={
            'date': future_day.isoformat(), 'start_time': '13:00', 'end_time': '14:00',
        })
        assert duplicate.status_code == 409
        assert duplicate.get_json()['slot_id'] == slot_id

        login(first.user)
        booked = client.post('/api/student/bookings', json=booking_body(nurse, future_day))
        assert booked.status_code == 201
        appointment_id = booked.get_json()['data']['id']
        assert booked.get_json()['data']['status'] == 'pending'

        login(second.user)
        full = client.post('/api/student/bookings', json=booking_body(nurse, future_day))
        assert full.status_code == 409
        assert full.get_json() == {'success': False, 'error': 'This time slot is fully booked'}

        open_slots = client.get(f'/api/student/availability?date={future_day.isoformat()}').get_json()['data']
        assert open_slots[0]['full_times'] == ['09:00']

        login(nurse.user)
        rejected = client.put(f'/api/nurse/appointments/{appointment_id}/status', json={'status': 'completed'})
        assert rejected.status_code == 400

        confirmed = client.put(f'/api/nurse/appointments/{appointment_id}/status', json={'status': 'confirmed'})
        assert confirmed.status_code == 200
        assert confirmed.get_json()['data']['status'] == 'confirmed'

        blocked = client.delete(f'/api/nurse/availability/{slot_id}')
        assert blocked.status_code == 409

        updated = client.post('/api/nurse/availability', json={'id': slot_id, 'maxPatients': 2})
        assert updated.status_code == 200
        assert updated.get_json()['data']['max_patients'] == 2

        login(first.user)
        notifications = client.get('/api/notifications').get_json()
        assert notifications['unread_count'] == 1
        assert notifications['data'][0]['type'] == 'appointment_confirmed'
        assert client.put('/api/notifications/read-all').get_json()['data']['updated'] == 1

    def test_unassigned_student_forbidden(self, client, factory, login, future_day):
        nurse = factory.nurse()
        factory.slot(nurse, future_day)
        student = factory.student()

        login(student.user)
        response = client.post('/api/student/bookings', json=booking_body(nurse, future_day))
        assert response.status_code == 403
        assert response.get_json()['error'] == 'You are not assigned to this nurse'

    def test_malformed_booking(self, client, clinic_setup, login):
        nurse, student, _ = clinic_setup
        login(student.user)

        assert client.post('/api/student/bookings', json={'nurseId': nurse.id}).status_code == 400
        bad_date = client.post('/api/student/bookings', json={'nurseId': nurse.id, 'appointmentDate': 'soon'})
        assert bad_date.status_code == 400
        not_json = client.post('/api/student/bookings', data='x', content_type='text/plain')
        assert not_json.get_json() == {'success': False, 'error': 'Request body must be JSON'}

    def test_rate_limited(self, app, client, clinic_setup, login, fake_redis, future_day):
        app.config.update(RATELIMIT_ENABLED=True, BOOKING_RATE_LIMIT=1)
        nurse, student, _ = clinic_setup
        login(student.user)

        assert client.post('/api/student/bookings', json=booking_body(nurse, future_day)).status_code == 201
        limited = client.post('/api/student/bookings', json=booking_body(nurse, future_day, at='10:00'))
        assert limited.status_code == 429
        assert limited.get_json()['retry_after'] == 900
        assert limited.headers['Retry-After'] == '900'


class TestCheckInAndRecords:
    def test_scan_student_qr_without_appointment(self, client, clinic_setup, login):
        nurse, student, _ = clinic_setup
        login(nurse.user)

        token = client.post(f'/api/nurse/students/{student.id}/qr').get_json()['data']['qr_data']
        scanned = client.post('/api/nurse/scan-appointment-qr', json={'qrData': token})

        assert scanned.status_code == 200
        data = scanned.get_json()['data']
        assert data['needs_check_in'] is False
        assert data['student']['student_number'] == student.student_number

    def test_scan_appointment_qr_checks_in_today(self, client, factory, login):
        nurse = factory.nurse()
        student = factory.student()
        today = datetime.now().replace(hour=23, minute=59, second=0, microsecond=0)
        appointment = factory.appointment(student, nurse, today, status=AppointmentStatus.CONFIRMED)
        login(nurse.user)

        token = client.post(f'/api/nurse/appointments/{appointment.id}/qr').get_json()['data']['qr_data']
        scanned = client.post('/api/nurse/scan-appointment-qr', json={'qr_data': token})

        assert scanned.status_code == 200
        assert scanned.get_json()['data']['appointment']['qr_check_in'] is True
        again = client.post('/api/nurse/scan-appointment-qr', json={'qr_data': token})
        assert again.status_code == 409

    def test_record_completes_appointment(self, db, client, factory, login):
        nurse = factory.nurse()
        student = factory.student()
        appointment = factory.appointment(student, nurse, datetime(2025, 1, 10, 9, 0),
                                          status=AppointmentStatus.CONFIRMED)
        login(nurse.user)

        created = client.post('/api/medical-records', json={
            'studentId': student.id,
            'appointmentId': appointment.id,
            'diagnosis': 'Migraine',
            'vitalSigns': 'BP 120/80',
        })
        assert created.status_code == 201
        record = created.get_json()['data']
        assert record['vital_signs'] == 'BP 120/80'
        assert db.session.get(Appointment, appointment.id).status == AppointmentStatus.COMPLETED

        listed = client.get(f'/api/medical-records/student/{student.id}').get_json()['data']
        assert [r['id'] for r in listed] == [record['id']]

        assert client.delete(f"/api/medical-records/{record['id']}").status_code == 200
        assert client.get(f"/api/medical-records/{record['id']}").status_code == 404


class TestAdmin:
    def test_override_and_retention(self, client, factory, login):
        admin = factory.admin()
        nurse = factory.nurse()
        student = factory.student()
        appointment = factory.appointment(student, nurse, datetime(2025, 1, 10, 9, 0),
                                          status=AppointmentStatus.NO_SHOW)
        login(admin)

        override = client.put(f'/api/admin/appointments/{appointment.id}/status', json={'status': 'completed'})
        assert override.status_code == 200
        assert override.get_json()['data']['status'] == 'completed'

        assert client.get('/api/admin/settings/archive-retention').get_json()['data']['months'] == 12
        assert client.put('/api/admin/settings/archive-retention', json={'months': 0}).status_code == 400
        saved = client.put('/api/admin/settings/archive-retention', json={'months': 18})
        assert saved.get_json()['data']['months'] == 18

    def test_nurse_cannot_override(self, client, factory, login):
        nurse = factory.nurse()
        login(nurse.user)
        response = client.put('/api/admin/appointments/1/status', json={'status': 'completed'})
        assert response.status_code == 403


class TestErrorEnvelope:
    def test_unknown_endpoint(self, client):
        response = client.get('/api/nowhere')
        assert response.status_code == 404
        assert response.get_json() == {'success': False, 'error': 'Endpoint not found'}

    def test_unexpected_error_is_generic(self, app, client):
        def explode():
            raise RuntimeError('secret connection string')

        app.add_url_rule('/boom', 'boom', explode)
        response = client.get('/boom')

        assert response.status_code == 500
        assert response.get_json() == {'success': False, 'error': 'Internal server error'}

    def test_health(self, client, fake_redis):
        assert client.get('/health').get_json()['status'] == 'healthy'
        assert client.get('/health/live').status_code == 200
        ready = client.get('/health/ready')
        assert ready.status_code == 200
        assert ready.get_json()['redis'] == 'connected'
