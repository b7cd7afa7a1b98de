from datetime import datetime

import pytest

from eclinic.errors import AuthorizationError, ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from eclinic.models import AppointmentStatus, MedicalRecord, Notification
from eclinic.services import medical_record_service

S = AppointmentStatus
NINE = datetime(2025, 1, 10, 9, 0)
AFTER = datetime(2025, 1, 10, 9, 40)


@pytest.fixture
def pair(factory):
    nurse = factory.nurse()
    student = factory.student()
    factory.assign(nurse, student)
    return nurse, student


class TestCreateRecord:
    def test_walk_in_record(self, pair):
        nurse, student = pair
        record = medical_record_service.create_record(nurse, nurse.user, {
            'student_id': student.id,
            'symptoms': 'Cough',
            'diagnosis': 'Common cold',
            'record_type': 'Checkup',
        }, now=AFTER)

        assert record.appointment_id is None
        assert record.record_type == 'checkup'
        assert record.visit_date == AFTER
        notification = Notification.query.filter_by(user_id=student.user_id).one()
        assert notification.type == 'record_created'

    def test_completes_linked_appointment(self, pair, factory):
        nurse, student = pair
        appointment = factory.appointment(student, nurse, NINE, status=S.CONFIRMED, check_in_time=NINE)

        record = medical_record_service.create_record(nurse, nurse.user, {
            'student_id': student.id,
            'appointment_id': appointment.id,
            'diagnosis': 'Sprain',
        }, now=AFTER)

        assert record.appointment_id == appointment.id
        assert appointment.status == S.COMPLETED
        assert appointment.check_out_time == AFTER

    def test_pending_appointment_cannot_be_recorded(self, pair, factory):
        nurse, student = pair
        appointment = factory.appointment(student, nurse, NINE)

        with pytest.raises(InvalidTransitionError):
            medical_record_service.create_record(nurse, nurse.user, {
                'student_id': student.id, 'appointment_id': appointment.id,
            }, now=AFTER)
        assert MedicalRecord.query.count() == 0
        assert appointment.status == S.PENDING

    def test_second_record_for_appointment_conflicts(self, pair, factory):
        nurse, student = pair
        appointment = factory.appointment(student, nurse, NINE, status=S.CONFIRMED)
        data = {'student_id': student.id, 'appointment_id': appointment.id}
        medical_record_service.create_record(nurse, nurse.user, dict(data), now=AFTER)

        with pytest.raises(ConflictError):
            medical_record_service.create_record(nurse, nurse.user, dict(data), now=AFTER)
        assert MedicalRecord.query.count() == 1

    def test_appointment_of_other_student(self, pair, factory):
        nurse, student = pair
        other = factory.student()
        appointment = factory.appointment(other, nurse, NINE, status=S.CONFIRMED)

        with pytest.raises(ValidationError):
            medical_record_service.create_record(nurse, nurse.user, {
                'student_id': student.id, 'appointment_id': appointment.id,
            }, now=AFTER)
        assert appointment.status == S.CONFIRMED

    def test_other_nurses_appointment(self, pair, factory):
        nurse, student = pair
        other = factory.nurse(name='Nurse Ana')
        appointment = factory.appointment(student, nurse, NINE, status=S.CONFIRMED)

        with pytest.raises(AuthorizationError):
            medical_record_service.create_record(other, other.user, {
                'student_id': student.id, 'appointment_id': appointment.id,
            }, now=AFTER)

    @pytest.mark.parametrize('student_id', [None, 'abc'])
    def test_invalid_student_id(self, pair, student_id):
        nurse, _ = pair
        with pytest.raises(ValidationError):
            medical_record_service.create_record(nurse, nurse.user, {'student_id': student_id})

    def test_unknown_student(self, pair):
        nurse, _ = pair
        with pytest.raises(NotFoundError):
            medical_record_service.create_record(nurse, nurse.user, {'student_id': 999})

    def test_unknown_record_type(self, pair):
        nurse, student = pair
        with pytest.raises(ValidationError):
            medical_record_service.create_record(nurse, nurse.user, {
                'student_id': student.id, 'record_type': 'surgery',
            })


class TestEditRecord:
    def _record(self, nurse, student):
        return medical_record_service.create_record(nurse, nurse.user, {
            'student_id': student.id, 'diagnosis': 'Flu',
        }, now=AFTER)

    def test_author_updates(self, pair):
        nurse, student = pair
        record = self._record(nurse, student)

        updated = medical_record_service.update_record(record.id, nurse.id, {
            'treatment': 'Rest', 'follow_up_required': True, 'follow_up_date': '2025-01-17',
        })
        assert updated.treatment == 'Rest'
        assert updated.follow_up_date.isoformat() == '2025-01-17'
        assert updated.diagnosis == 'Flu'

    def test_other_nurse_forbidden(self, pair, factory):
        nurse, student = pair
        other = factory.nurse(name='Nurse Ana')
        record = self._record(nurse, student)

        with pytest.raises(AuthorizationError):
            medical_record_service.update_record(record.id, other.id, {'treatment': 'x'})
        with pytest.raises(AuthorizationError):
            medical_record_service.delete_record(record.id, other.id)

    def test_archived_record_is_read_only(self, db, pair):
        nurse, student = pair
        record = self._record(nurse, student)
        record.record_type = 'consultation_archived'
        db.session.commit()

        with pytest.raises(ConflictError):
            medical_record_service.update_record(record.id, nurse.id, {'treatment': 'x'})

    def test_delete_keeps_appointment_completed(self, pair, factory):
        nurse, student = pair
        appointment = factory.appointment(student, nurse, NINE, status=S.CONFIRMED)
        record = medical_record_service.create_record(nurse, nurse.user, {
            'student_id': student.id, 'appointment_id': appointment.id,
        }, now=AFTER)

        medical_record_service.delete_record(record.id, nurse.id)

        assert MedicalRecord.query.count() == 0
        assert appointment.status == S.COMPLETED

    def test_list_hides_archived_on_request(self, db, pair):
        nurse, student = pair
        kept = self._record(nurse, student)
        archived = self._record(nurse, student)
        archived.record_type = 'checkup_archived'
        db.session.commit()

        assert len(medical_record_service.list_for_student(student.id)) == 2
        visible = medical_record_service.list_for_student(student.id, include_archived=False)
        assert [r.id for r in visible] == [kept.id]
