from eclinic.models import NurseStudentAssignment, User
from eclinic.seeds import DEMO_USERS, seed_demo_users
from tasks.lifecycle_tasks import LOCK_NAME


def test_seed_is_idempotent(app):
    created = seed_demo_users()
    assert sorted(created) == sorted(u['email'] for u in DEMO_USERS)
    assert NurseStudentAssignment.query.count() == 1

    assert seed_demo_users() == []
    assert User.query.count() == len(DEMO_USERS)
    assert NurseStudentAssignment.query.count() == 1


def test_seeded_users_can_log_in(app, client):
    seed_demo_users()
    response = client.post('/api/auth/login', json={'email': 'nurse1@clinic.edu', 'password': 'nurse123'})
    assert response.status_code == 200
    assert response.get_json()['data']['nurse_id'] is not None


def test_run_sweeps_command(app, fake_redis):
    result = app.test_cli_runner().invoke(args=['run-sweeps'])
    assert result.exit_code == 0
    assert 'auto_no_show: 0' in result.output
    assert 'reminders: 0' in result.output
    assert fake_redis.locks == set()


def test_run_sweeps_command_respects_lock(app, fake_redis):
    fake_redis.locks.add(LOCK_NAME)

    result = app.test_cli_runner().invoke(args=['run-sweeps'])

    assert result.exit_code == 1
    assert 'Sweeps skipped' in result.output
    assert 'auto_no_show' not in result.output
