from deptportal import app, db
from deptportal.models import (
    Profile, Teacher, Student, Course, CourseOffering, Room, RoutineSlot, Announcement,
    CmsDepartmentInfo, CmsStat, CmsProgram, CmsNavigationLink, CmsHodMessage,
)
from deptportal.terms import term_from_course_code
from werkzeug.security import generate_password_hash
import random

TEACHERS = [
    ('Dr. Alice Rahman', 'AR', 'PROFESSOR'),
    ('Dr. Wahid Ibn Sufian', 'WIS', 'ASSOCIATE_PROFESSOR'),
    ('Bob Karim', 'BK', 'ASSISTANT_PROFESSOR'),
    ('Nusrat Jahan', 'NJ', 'LECTURER'),
]

COURSES = [
    ('CSE 1101', 'Structured Programming Language', 3, 'Theory'),
    ('CSE 1102', 'Structured Programming Language Lab', 1.5, 'Lab'),
    ('CSE 2101', 'Data Structures', 3, 'Theory'),
    ('CSE 3201', 'Operating Systems', 3, 'Theory'),
    ('CSE 3202', 'Operating Systems Lab', 1.5, 'Lab'),
    ('CSE 4101', 'Artificial Intelligence', 3, 'Theory'),
]

ROOMS = [
    ('301', 'Academic Building 1', 60, 'classroom', ['Projector', 'AC']),
    ('302', 'Academic Building 1', 60, 'classroom', ['Projector']),
    ('Lab-1', 'Academic Building 1', 40, 'lab', ['40 PCs', 'Projector']),
    ('Seminar', 'Academic Building 1', 120, 'seminar', ['Sound system']),
]


def _profile(email, password, role):
    profile = Profile.query.filter_by(email=email).first()
    if profile:
        return profile, False
    profile = Profile(email=email, password_hash=generate_password_hash(password), role=role)
    db.session.add(profile)
    db.session.flush()
    return profile, True


def seed():
    with app.app_context():
        print("Seeding database...")
        db.create_all()

        admin, created = _profile('admin@dept.edu', 'admin', 'ADMIN')
        if created:
            print("Created admin profile (admin@dept.edu / admin).")

        for name, uid, designation in TEACHERS:
            profile, created = _profile(f"{uid.lower()}@dept.edu", 'teacher123', 'TEACHER')
            if created:
                db.session.add(Teacher(user_id=profile.user_id, teacher_uid=uid, full_name=name,
                                       designation=designation, office_room=f"{random.randint(401, 420)}"))
        db.session.commit()
        teachers = Teacher.query.order_by(Teacher.teacher_uid).all()
        print(f"{len(teachers)} teachers.")

        for code, title, credit, course_type in COURSES:
            if not Course.query.filter_by(code=code).first():
                db.session.add(Course(code=code, title=title, credit=credit, course_type=course_type))
        for number, building, capacity, room_type, facilities in ROOMS:
            if not db.session.get(Room, number):
                db.session.add(Room(room_number=number, building_name=building, capacity=capacity,
                                    room_type=room_type, facilities=facilities))
        db.session.commit()
        courses = Course.query.order_by(Course.code).all()
        print(f"{len(courses)} courses, {Room.query.count()} rooms.")

        # Students: 10 per year, starting in the first term of that year
        for year in range(1, 5):
            session_year = 2026 - year
            for i in range(1, 11):
                roll = f"{str(session_year)[2:]}03{i:03d}"
                profile, created = _profile(f"s{roll}@student.dept.edu", roll, 'STUDENT')
                if created:
                    db.session.add(Student(user_id=profile.user_id, roll_no=roll, full_name=f"Student {roll}",
                                           term=f"{year}-1", session=str(session_year),
                                           section='A' if i <= 5 else 'B'))
        db.session.commit()
        print(f"{Student.query.count()} students.")

        # One offering per course, labs shared by two teachers
        for index, course in enumerate(courses):
            assigned = [teachers[index % len(teachers)]]
            if course.course_type == 'Lab':
                assigned.append(teachers[(index + 1) % len(teachers)])
            for teacher in assigned:
                if not CourseOffering.query.filter_by(course_id=course.id, teacher_user_id=teacher.user_id).first():
                    db.session.add(CourseOffering(course_id=course.id, teacher_user_id=teacher.user_id,
                                                  term=term_from_course_code(course.code), session='2025'))
        db.session.commit()

        if not RoutineSlot.query.first():
            theory_start = ['08:00', '08:50', '09:40', '10:40', '11:30']
            for day, course in enumerate(c for c in courses if c.course_type == 'Theory'):
                offering = course.offerings[0]
                start = theory_start[day % len(theory_start)]
                end = {'08:00': '08:50', '08:50': '09:40', '09:40': '10:30', '10:40': '11:30', '11:30': '12:20'}[start]
                db.session.add(RoutineSlot(offering_id=offering.id, room_number='301', day_of_week=day % 5,
                                           start_time=start, end_time=end, section='A'))
            for day, course in enumerate(c for c in courses if c.course_type == 'Lab'):
                for offering in course.offerings:
                    db.session.add(RoutineSlot(offering_id=offering.id, room_number='Lab-1', day_of_week=day % 5,
                                               start_time='14:30', end_time='17:00', section='A'))
            db.session.commit()
        print(f"{RoutineSlot.query.count()} routine slots.")

        if not Announcement.query.first():
            db.session.add(Announcement(title='Class Test 2', content='CT-2 for CSE 3201 covers chapters 4-6.',
                                        type='class-test', course_code='CSE 3201', priority='high'))
            db.session.add(Announcement(title='Department seminar', content='Guest talk on distributed systems.',
                                        type='event', priority='medium'))

        if not CmsDepartmentInfo.query.first():
            for key, value in [('name', 'Department of Computer Science and Engineering'),
                               ('short_name', 'CSE'),
                               ('about', 'The department offers undergraduate and graduate programs in computing.'),
                               ('email', 'cse@dept.edu'),
                               ('phone', '+880-000-000000'),
                               ('address', 'Academic Building 1')]:
                db.session.add(CmsDepartmentInfo(key=key, value=value))
            for order, (label, value) in enumerate([('Students', '800+'), ('Faculty', '40'), ('Labs', '8')]):
                db.session.add(CmsStat(label=label, value=value, display_order=order))
            db.session.add(CmsProgram(name='B.Sc. in Computer Science and Engineering', short_name='B.Sc. CSE',
                                      duration='4 years', total_credits=160))
            db.session.add(CmsHodMessage(name='Dr. Alice Rahman', designation='Head of the Department',
                                         message='Welcome to the department.'))
            for order, (label, url) in enumerate([('About', '/about'), ('Programs', '/programs'),
                                                  ('Faculty', '/faculty'), ('News', '/news'),
                                                  ('Notices', '/notices'), ('Contact', '/contact')]):
                db.session.add(CmsNavigationLink(label=label, url=url, display_order=order))
        db.session.commit()
        print("Seeding complete.")


if __name__ == '__main__':
    seed()
