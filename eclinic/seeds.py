"""
Demo seed data: one admin, one nurse and one student assigned to that nurse.
Idempotent; existing users are left untouched.
"""
import logging

from eclinic.extensions import db
from eclinic.models import Nurse, NurseStudentAssignment, Student, User

logger = logging.getLogger(__name__)

DEMO_USERS = [
    {
        'email': 'admin@clinic.edu',
        'password': 'admin123',
        'first_name': 'Clinic',
        'last_name': 'Admin',
        'role': 'admin',
    },
    {
        'email': 'nurse1@clinic.edu',
        'password': 'nurse123',
        'first_name': 'Maria',
        'last_name': 'Santos',
        'role': 'nurse',
        'specialization': 'General Practice',
    },
    {
        'email': 'student1@clinic.edu',
        'password': 'student123',
        'first_name': 'Juan',
        'last_name': 'Dela Cruz',
        'role': 'student',
        'student_number': '2025-00001',
    },
]


def _create_user(data):
    user = User(
        email=data['email'],
        first_name=data['first_name'],
        last_name=data['last_name'],
        role=data['role'],
        is_active=True,
    )
    user.set_password(data['password'])
    db.session.add(user)
    db.session.flush()

    if data['role'] == 'nurse':
        db.session.add(Nurse(user_id=user.id, name=f"{data['first_name']} {data['last_name']}",
                             specialization=data.get('specialization')))
    elif data['role'] == 'student':
        db.session.add(Student(user_id=user.id, student_number=data['student_number'],
                               name=f"{data['first_name']} {data['last_name']}"))
    return user


def seed_demo_users():
    """Create DEMO_USERS that do not exist yet. Returns the created emails."""
    created = []
    for data in DEMO_USERS:
        if User.query.filter_by(email=data['email']).first():
            continue
        _create_user(data)
        created.append(data['email'])
    db.session.flush()

    nurse = Nurse.query.join(User).filter(User.email == 'nurse1@clinic.edu').first()
    student = Student.query.join(User).filter(User.email == 'student1@clinic.edu').first()
    if nurse and student and not NurseStudentAssignment.query.filter_by(
            nurse_id=nurse.id, student_id=student.id).first():
        db.session.add(NurseStudentAssignment(nurse_id=nurse.id, student_id=student.id, is_active=True))

    db.session.commit()
    if created:
        logger.info("Seeded %d demo users", len(created))
    return created
