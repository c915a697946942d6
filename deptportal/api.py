from flask import request, jsonify, session
from deptportal import app, db
import logging
logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)
from deptportal.models import (
    Profile, Teacher, Student, Course, CourseOffering, Room, RoutineSlot,
    TermUpgradeRequest, Result, Announcement, AuditLog,
)
from deptportal import terms, routine, results, csv_import, cms
from sqlalchemy.exc import IntegrityError
from sqlalchemy import Boolean, Date, DateTime, Float, Integer, JSON
from werkzeug.security import generate_password_hash
from functools import wraps
from datetime import datetime, date
import re
import secrets

ADMIN = 'ADMIN'
TEACHER = 'TEACHER'
STUDENT = 'STUDENT'
ALL_ROLES = (ADMIN, TEACHER, STUDENT)

ROOM_TYPES = ('classroom', 'lab', 'seminar', 'research')
COURSE_TYPES = ('Theory', 'Lab', 'Sessional')
REQUEST_STATUSES = ('pending', 'approved', 'rejected')
ANNOUNCEMENT_TYPES = ('notice', 'class-test', 'assignment', 'lab-test', 'quiz', 'event', 'other')
PRIORITIES = ('low', 'medium', 'high')

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
UUID_RE = re.compile(r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$', re.IGNORECASE)


class ApiError(Exception):
    def __init__(self, status, message):
        super().__init__(message)
        self.status = status
        self.message = message


@app.errorhandler(ApiError)
def handle_api_error(error):
    return _json_error(error.message, error.status)


def _json_error(message, status):
    return jsonify({'success': False, 'error': message}), status


def _ok(data=None, status=200, **extra):
    payload = {'success': True}
    if data is not None:
        payload['data'] = data
    payload.update(extra)
    return jsonify(payload), status


def api_roles_required(*roles):
    """Guard a JSON route: database configured, caller logged in, role allowed."""
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if not app.config.get('DATABASE_CONFIGURED'):
                return jsonify({'success': False, 'error': 'Database not configured'}), 503
            if app.config.get('API_REQUIRE_LOGIN'):
                if not session.get('logged_in'):
                    return _json_error('Authentication required', 401)
                if roles and session.get('role') not in roles:
                    return _json_error('You are not authorized to perform this action', 403)
            return fn(*args, **kwargs)
        return wrapper
    return decorator


def _body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ApiError(400, 'Request body must be a JSON object')
    return data


def _clean(value):
    return str(value).strip() if value is not None else ''


def _clean_or_none(value):
    cleaned = _clean(value)
    return cleaned or None


def _as_bool(value):
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


def _is_duplicate(exc):
    message = str(getattr(exc, 'orig', exc)).lower()
    return 'unique' in message or 'duplicate' in message


def _commit_or_conflict(message_for):
    """Commit; turn a duplicate-key violation into a 409.

    ``message_for`` maps the lower-cased driver message to the error text.
    Other integrity errors are re-raised.
    """
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        if _is_duplicate(e):
            text = message_for(str(getattr(e, 'orig', e)).lower())
            logger.warning(f"Duplicate key rejected: {text}")
            raise ApiError(409, text)
        raise


def _audit(action, target, details=None):
    try:
        db.session.add(AuditLog(
            action=action,
            actor=session.get('user'),
            actor_role=session.get('role'),
            target=target,
            details=details,
        ))
        db.session.commit()
    except Exception as _e:
        db.session.rollback()
        logger.warning(f"Failed to write audit log for {action}: {_e}")


def _required_id(data):
    value = _clean(data.get('id'))
    if not value:
        raise ApiError(400, 'id is required')
    return value


def _actor_user_id():
    user_id = session.get('user_id')
    return user_id if user_id and UUID_RE.match(user_id) else None


# --- Students ---

def _create_student(data):
    full_name = _clean(data.get('full_name'))
    email = _clean(data.get('email')).lower()
    roll_no = _clean(data.get('roll_no'))
    term = _clean(data.get('term'))
    session_name = _clean(data.get('session'))

    if not full_name or not email or not roll_no or not term or not session_name:
        raise ApiError(400, 'Required fields: full_name, email, roll_no, term, session')
    if not EMAIL_RE.match(email):
        raise ApiError(400, 'Invalid email format')
    if not terms.is_valid_term(term):
        raise ApiError(400, f'Invalid term "{term}". Must be one of: {", ".join(terms.TERM_ORDER)}')

    initial_password = roll_no
    profile = Profile(
        role=STUDENT,
        email=email,
        password_hash=generate_password_hash(initial_password),
        is_active=True,
    )
    db.session.add(profile)
    db.session.flush()
    student = Student(
        user_id=profile.user_id,
        roll_no=roll_no,
        full_name=full_name,
        phone=_clean_or_none(data.get('phone')),
        term=term,
        session=session_name,
        batch=_clean_or_none(data.get('batch')),
        section=_clean_or_none(data.get('section')),
    )
    db.session.add(student)
    logger.info(f"Adding student: {full_name} ({roll_no})")
    return student, initial_password


def _student_duplicate_message(message):
    if 'email' in message:
        return 'A student with this email already exists'
    return 'A student with this roll number already exists'


def _add_student_committed(data):
    try:
        student, initial_password = _create_student(data)
    except IntegrityError as e:
        # flush of the profile row
        db.session.rollback()
        if _is_duplicate(e):
            raise ApiError(409, _student_duplicate_message(str(getattr(e, 'orig', e)).lower()))
        raise
    except ApiError:
        db.session.rollback()
        raise
    _commit_or_conflict(_student_duplicate_message)
    return student, initial_password


@app.route('/api/students', methods=['GET'])
@api_roles_required(ADMIN, TEACHER)
def api_students():
    q = Student.query.join(Profile)
    term = request.args.get('term', '').strip()
    section = request.args.get('section', '').strip()
    active = request.args.get('active', '').strip()
    if term:
        q = q.filter(Student.term == term)
    if section:
        q = q.filter(Student.section == section)
    if active:
        q = q.filter(Profile.is_active == _as_bool(active))
    students = q.order_by(Student.created_at.desc()).all()
    return jsonify([s.to_dict(with_profile=True) for s in students])


@app.route('/api/students', methods=['POST'])
@api_roles_required(ADMIN)
def api_add_student():
    student, initial_password = _add_student_committed(_body())
    return _ok(student.to_dict(with_profile=True), 201, initial_password=initial_password)


@app.route('/api/students', methods=['PATCH'])
@api_roles_required(ADMIN)
def api_update_student():
    data = _body()
    user_id = _clean(data.get('user_id'))
    if not user_id:
        raise ApiError(400, 'user_id is required')

    updates = {}
    if 'term' in data:
        term = _clean(data.get('term'))
        if not terms.is_valid_term(term):
            raise ApiError(400, f'Invalid term "{term}". Must be one of: {", ".join(terms.TERM_ORDER)}')
        updates['term'] = term
    for field in ('full_name', 'phone', 'session', 'batch', 'section'):
        if field in data:
            updates[field] = _clean_or_none(data.get(field))
    for field in ('full_name', 'session'):
        if field in updates and not updates[field]:
            raise ApiError(400, f'{field} cannot be empty')
    if not updates:
        raise ApiError(400, 'No fields to update')

    student = db.session.get(Student, user_id)
    if not student:
        raise ApiError(404, 'Student not found')
    for field, value in updates.items():
        setattr(student, field, value)
    logger.info(f"Updating student {student.roll_no}: {sorted(updates)}")
    _commit_or_conflict(_student_duplicate_message)
    return _ok(student.to_dict(with_profile=True))


@app.route('/api/students', methods=['DELETE'])
@api_roles_required(ADMIN)
def api_deactivate_student():
    user_id = request.args.get('userId', '').strip()
    if not user_id:
        raise ApiError(400, 'User ID required')
    student = db.session.get(Student, user_id)
    if not student:
        raise ApiError(404, 'Student not found')
    student.profile.is_active = False
    db.session.commit()
    logger.info(f"Deactivated student {student.roll_no}")
    _audit('student_deactivate', f'student:{student.roll_no}')
    return _ok()


@app.route('/api/students/by-term', methods=['GET'])
@api_roles_required(ADMIN, TEACHER)
def api_students_by_term():
    students = Student.query.join(Profile).filter(Profile.is_active.is_(True)).all()
    groups = terms.group_students_by_term(students)
    return jsonify([
        {
            'term': g['term'],
            'next_term': g['next_term'],
            'prev_term': g['prev_term'],
            'students': [s.to_dict() for s in g['students']],
        }
        for g in groups
    ])


@app.route('/api/students/bulk-term', methods=['POST'])
@api_roles_required(ADMIN)
def api_bulk_term_change():
    data = _body()
    user_ids = data.get('user_ids')
    from_term = _clean(data.get('from_term'))
    direction = _clean(data.get('direction'))

    if not isinstance(user_ids, list) or not user_ids:
        raise ApiError(400, 'user_ids must be a non-empty list')
    if not terms.is_valid_term(from_term):
        raise ApiError(400, f'Invalid term "{from_term}"')
    if direction not in (terms.UPGRADE, terms.DOWNGRADE):
        raise ApiError(400, 'direction must be "upgrade" or "downgrade"')
    target = terms.shift_term(from_term, direction)
    if not target:
        raise ApiError(400, f'Cannot {direction} students from term {from_term}')

    success = 0
    errors = []
    for user_id in user_ids:
        student = db.session.get(Student, str(user_id))
        if not student:
            errors.append({'student_id': user_id, 'error': 'Student not found'})
            continue
        if student.term != from_term:
            errors.append({'student_id': user_id, 'error': f'Student is in term {student.term}, not {from_term}'})
            continue
        student.term = target
        success += 1
    db.session.commit()
    logger.info(f"Bulk {direction} {from_term}->{target}: {success} moved, {len(errors)} failed")
    _audit(f'term_bulk_{direction}', f'term:{from_term}', f'{success} students moved to {target}')
    return _ok(
        total_requested=len(user_ids),
        success_count=success,
        failed_count=len(errors),
        errors=errors,
        target_term=target,
    )


@app.route('/api/students/import', methods=['POST'])
@api_roles_required(ADMIN)
def api_import_students():
    file = request.files.get('file')
    if not file:
        raise ApiError(400, 'CSV file is required')
    rows, errors = csv_import.parse_student_csv(
        csv_import.read_csv_text(file), max_rows=app.config.get('MAX_BULK_IMPORT_ROWS', 1000))
    created = []
    failed = []
    for row in rows:
        try:
            student, initial_password = _add_student_committed(row)
        except ApiError as e:
            failed.append({'roll_no': row['roll_no'], 'full_name': row['full_name'], 'error': e.message})
            continue
        created.append({'full_name': student.full_name, 'roll_no': student.roll_no, 'password': initial_password})
    logger.info(f"Student import: {len(created)} created, {len(failed)} failed, {len(errors)} rows skipped")
    return _ok(created=created, failed=failed, parse_errors=errors)


# --- Teachers ---

def _next_teacher_uid(full_name):
    base = routine.get_teacher_initials(full_name)
    if base == '??' or not base:
        base = 'T'
    candidate = base
    n = 2
    while Teacher.query.filter_by(teacher_uid=candidate).first():
        candidate = f"{base}{n}"
        n += 1
    return candidate


def _teacher_duplicate_message(message):
    if 'email' in message:
        return 'A teacher with this email already exists'
    return 'A teacher with this UID already exists'


def _add_teacher_committed(data):
    full_name = _clean(data.get('full_name'))
    email = _clean(data.get('email')).lower()
    if not full_name or not email:
        raise ApiError(400, 'Required fields: full_name, email')
    if not EMAIL_RE.match(email):
        raise ApiError(400, 'Invalid email format')
    designation = _clean(data.get('designation')) or 'LECTURER'
    if designation not in csv_import.VALID_DESIGNATIONS:
        raise ApiError(400, f'Invalid designation "{designation}"')

    password = _clean(data.get('password')) or secrets.token_urlsafe(8)
    teacher_uid = _clean(data.get('teacher_uid')).upper() or _next_teacher_uid(full_name)
    try:
        profile = Profile(role=TEACHER, email=email, password_hash=generate_password_hash(password))
        db.session.add(profile)
        db.session.flush()
        teacher = Teacher(
            user_id=profile.user_id,
            teacher_uid=teacher_uid,
            full_name=full_name,
            phone=_clean_or_none(data.get('phone')),
            designation=designation,
            department=_clean(data.get('department')) or 'CSE',
            office_room=_clean_or_none(data.get('office_room')),
        )
        db.session.add(teacher)
        db.session.flush()
    except IntegrityError as e:
        db.session.rollback()
        if _is_duplicate(e):
            raise ApiError(409, _teacher_duplicate_message(str(getattr(e, 'orig', e)).lower()))
        raise
    logger.info(f"Adding teacher: {full_name} ({email})")
    _commit_or_conflict(_teacher_duplicate_message)
    return teacher, password


@app.route('/api/teachers', methods=['GET'])
@api_roles_required(*ALL_ROLES)
def api_teachers():
    q = Teacher.query.join(Profile)
    active = request.args.get('active', '').strip()
    if active:
        q = q.filter(Profile.is_active == _as_bool(active))
    teachers = q.order_by(Teacher.full_name).all()
    return jsonify([t.to_dict(with_profile=True) for t in teachers])


@app.route('/api/teachers', methods=['POST'])
@api_roles_required(ADMIN)
def api_add_teacher():
    teacher, password = _add_teacher_committed(_body())
    return _ok(teacher.to_dict(with_profile=True), 201, generated_password=password)


@app.route('/api/teachers', methods=['PATCH'])
@api_roles_required(ADMIN)
def api_update_teacher():
    data = _body()
    user_id = _clean(data.get('user_id'))
    if not user_id:
        raise ApiError(400, 'user_id is required')
    teacher = db.session.get(Teacher, user_id)
    if not teacher:
        raise ApiError(404, 'Teacher not found')

    changed = []
    for field in ('full_name', 'phone', 'department', 'office_room', 'leave_reason'):
        if field in data:
            setattr(teacher, field, _clean_or_none(data.get(field)))
            changed.append(field)
    if 'designation' in data:
        designation = _clean(data.get('designation'))
        if designation not in csv_import.VALID_DESIGNATIONS:
            raise ApiError(400, f'Invalid designation "{designation}"')
        teacher.designation = designation
        changed.append('designation')
    if 'is_on_leave' in data:
        teacher.is_on_leave = _as_bool(data.get('is_on_leave'))
        if not teacher.is_on_leave:
            teacher.leave_reason = None
        changed.append('is_on_leave')
    if not changed:
        raise ApiError(400, 'No fields to update')
    if not teacher.full_name:
        db.session.rollback()
        raise ApiError(400, 'full_name cannot be empty')
    _commit_or_conflict(_teacher_duplicate_message)
    return _ok(teacher.to_dict(with_profile=True))


@app.route('/api/teachers', methods=['DELETE'])
@api_roles_required(ADMIN)
def api_deactivate_teacher():
    user_id = request.args.get('userId', '').strip()
    if not user_id:
        raise ApiError(400, 'User ID required')
    teacher = db.session.get(Teacher, user_id)
    if not teacher:
        raise ApiError(404, 'Teacher not found')
    teacher.profile.is_active = False
    db.session.commit()
    logger.info(f"Deactivated teacher {teacher.teacher_uid}")
    _audit('teacher_deactivate', f'teacher:{teacher.teacher_uid}')
    return _ok()


@app.route('/api/teachers/import', methods=['POST'])
@api_roles_required(ADMIN)
def api_import_teachers():
    file = request.files.get('file')
    if not file:
        raise ApiError(400, 'CSV file is required')
    rows, errors = csv_import.parse_faculty_csv(
        csv_import.read_csv_text(file), max_rows=app.config.get('MAX_BULK_IMPORT_ROWS', 1000))
    created = []
    failed = []
    for row in rows:
        try:
            teacher, password = _add_teacher_committed(row)
        except ApiError as e:
            failed.append({'email': row['email'], 'full_name': row['full_name'], 'error': e.message})
            continue
        created.append({'full_name': teacher.full_name, 'email': row['email'], 'password': password})
    logger.info(f"Faculty import: {len(created)} created, {len(failed)} failed")
    return _ok(created=created, failed=failed, parse_errors=errors)


# --- Rooms ---

def _room_fields(data, room):
    if 'building_name' in data:
        room.building_name = _clean_or_none(data.get('building_name'))
    if 'capacity' in data:
        capacity = data.get('capacity')
        if capacity in (None, ''):
            room.capacity = None
        else:
            try:
                room.capacity = int(capacity)
            except (TypeError, ValueError):
                raise ApiError(400, 'capacity must be an integer')
            if room.capacity < 0:
                raise ApiError(400, 'capacity cannot be negative')
    if 'room_type' in data:
        room_type = _clean_or_none(data.get('room_type'))
        if room_type and room_type not in ROOM_TYPES:
            raise ApiError(400, f'room_type must be one of: {", ".join(ROOM_TYPES)}')
        room.room_type = room_type
    if 'facilities' in data:
        facilities = data.get('facilities') or []
        if isinstance(facilities, str):
            facilities = [f.strip() for f in facilities.split(',') if f.strip()]
        room.facilities = list(facilities)
    if 'is_active' in data:
        room.is_active = _as_bool(data.get('is_active'))


@app.route('/api/rooms', methods=['GET'])
@api_roles_required(*ALL_ROLES)
def api_rooms():
    rooms = Room.query.order_by(Room.room_number).all()
    return jsonify([r.to_dict() for r in rooms])


@app.route('/api/rooms', methods=['POST'])
@api_roles_required(ADMIN)
def api_add_room():
    data = _body()
    room_number = _clean(data.get('room_number'))
    if not room_number:
        raise ApiError(400, 'room_number is required')
    if db.session.get(Room, room_number):
        raise ApiError(409, 'Room already exists')
    room = Room(room_number=room_number, is_active=True)
    _room_fields(data, room)
    db.session.add(room)
    _commit_or_conflict(lambda _m: 'Room already exists')
    logger.info(f"Added room {room_number}")
    return _ok(room.to_dict(), 201)


@app.route('/api/rooms', methods=['PATCH'])
@api_roles_required(ADMIN)
def api_update_room():
    data = _body()
    room_number = _clean(data.get('room_number'))
    if not room_number:
        raise ApiError(400, 'room_number is required')
    room = db.session.get(Room, room_number)
    if not room:
        raise ApiError(404, 'Room not found')
    try:
        _room_fields(data, room)
    except ApiError:
        db.session.rollback()
        raise
    db.session.commit()
    return _ok(room.to_dict())


@app.route('/api/rooms', methods=['DELETE'])
@api_roles_required(ADMIN)
def api_delete_room():
    room_number = request.args.get('room_number', '').strip()
    if not room_number:
        raise ApiError(400, 'room_number is required')
    room = db.session.get(Room, room_number)
    if not room:
        raise ApiError(404, 'Room not found')
    if room.slots:
        raise ApiError(409, 'Room is used by routine slots')
    db.session.delete(room)
    db.session.commit()
    logger.info(f"Deleted room {room_number}")
    return _ok()


# --- Courses ---

def _parse_credit(value):
    try:
        credit = float(value)
    except (TypeError, ValueError):
        raise ApiError(400, 'Credit must be a number')
    if credit <= 0:
        raise ApiError(400, 'Credit must be greater than 0')
    return credit


def _course_type(value):
    course_type = _clean(value) or 'Theory'
    if course_type not in COURSE_TYPES:
        raise ApiError(400, f'course_type must be one of: {", ".join(COURSE_TYPES)}')
    return course_type


@app.route('/api/courses', methods=['GET'])
@api_roles_required(*ALL_ROLES)
def api_courses():
    courses = Course.query.order_by(Course.code).all()
    return jsonify([c.to_dict() for c in courses])


@app.route('/api/courses', methods=['POST'])
@api_roles_required(ADMIN)
def api_add_course():
    data = _body()
    code = _clean(data.get('code'))
    title = _clean(data.get('title'))
    if not code or not title or data.get('credit') in (None, ''):
        raise ApiError(400, 'Required fields: code, title, credit')
    if code != code.upper():
        raise ApiError(400, 'Course code must be uppercase (e.g., CSE 3201)')
    credit = _parse_credit(data.get('credit'))

    course = Course(
        code=code,
        title=title,
        credit=credit,
        course_type=_course_type(data.get('course_type')),
        description=_clean_or_none(data.get('description')),
    )
    db.session.add(course)
    _commit_or_conflict(lambda _m: f'Course with code "{code}" already exists')
    logger.info(f"Added course {code}")
    return _ok(course.to_dict(), 201)


@app.route('/api/courses', methods=['PATCH'])
@api_roles_required(ADMIN)
def api_update_course():
    data = _body()
    course_id = _clean(data.get('id'))
    if not course_id:
        raise ApiError(400, 'Course ID is required')

    updates = {}
    if 'code' in data:
        code = _clean(data.get('code'))
        if not code or code != code.upper():
            raise ApiError(400, 'Course code must be uppercase')
        updates['code'] = code
    if 'title' in data:
        title = _clean(data.get('title'))
        if not title:
            raise ApiError(400, 'Title cannot be empty')
        updates['title'] = title
    if 'credit' in data:
        updates['credit'] = _parse_credit(data.get('credit'))
    if 'course_type' in data:
        updates['course_type'] = _course_type(data.get('course_type'))
    if 'description' in data:
        updates['description'] = _clean_or_none(data.get('description'))
    if not updates:
        raise ApiError(400, 'No fields to update')

    course = db.session.get(Course, course_id)
    if not course:
        raise ApiError(404, 'Course not found')
    for field, value in updates.items():
        setattr(course, field, value)
    _commit_or_conflict(lambda _m: f'Course code "{updates.get("code")}" already exists')
    return _ok(course.to_dict())


@app.route('/api/courses', methods=['DELETE'])
@api_roles_required(ADMIN)
def api_delete_course():
    course_id = request.args.get('id', '').strip()
    if not course_id:
        raise ApiError(400, 'Course ID is required')
    course = db.session.get(Course, course_id)
    if not course:
        raise ApiError(404, 'Course not found')
    code = course.code
    db.session.delete(course)
    db.session.commit()
    logger.info(f"Deleted course {code}")
    return _ok()


# --- Course offerings ---

@app.route('/api/course-offerings', methods=['GET'])
@api_roles_required(*ALL_ROLES)
def api_course_offerings():
    q = CourseOffering.query
    course_id = request.args.get('course_id', '').strip()
    teacher_user_id = request.args.get('teacher_user_id', '').strip()
    if course_id:
        q = q.filter(CourseOffering.course_id == course_id)
    if teacher_user_id:
        q = q.filter(CourseOffering.teacher_user_id == teacher_user_id)
    offerings = q.order_by(CourseOffering.created_at.desc()).all()
    return jsonify([o.to_dict() for o in offerings])


@app.route('/api/course-offerings', methods=['POST'])
@api_roles_required(ADMIN)
def api_add_course_offering():
    data = _body()
    course_id = _clean(data.get('course_id'))
    teacher_user_id = _clean(data.get('teacher_user_id'))
    if not course_id or not teacher_user_id:
        raise ApiError(400, 'Required fields: course_id, teacher_user_id')

    course = db.session.get(Course, course_id)
    if not course:
        raise ApiError(404, 'Course not found')
    if not db.session.get(Teacher, teacher_user_id):
        raise ApiError(404, 'Teacher not found')
    existing = CourseOffering.query.filter_by(course_id=course_id, teacher_user_id=teacher_user_id).first()
    if existing:
        raise ApiError(409, 'This teacher is already assigned to this course')

    term = _clean(data.get('term')) or terms.term_from_course_code(course.code)
    if term and not terms.is_valid_term(term):
        raise ApiError(400, f'Invalid term "{term}"')
    offering = CourseOffering(
        course_id=course_id,
        teacher_user_id=teacher_user_id,
        term=term,
        session=_clean_or_none(data.get('session')),
        batch=_clean_or_none(data.get('batch')),
        section=_clean_or_none(data.get('section')),
        academic_year=_clean_or_none(data.get('academic_year')),
    )
    db.session.add(offering)
    db.session.commit()
    logger.info(f"Assigned teacher {teacher_user_id} to course {course.code}")
    return _ok(offering.to_dict(), 201)


@app.route('/api/course-offerings', methods=['PATCH'])
@api_roles_required(ADMIN)
def api_update_course_offering():
    data = _body()
    offering_id = _clean(data.get('id'))
    if not offering_id:
        raise ApiError(400, 'Offering ID is required')

    updates = {}
    if 'teacher_user_id' in data:
        teacher_user_id = _clean(data.get('teacher_user_id'))
        if not db.session.get(Teacher, teacher_user_id):
            raise ApiError(404, 'Teacher not found')
        updates['teacher_user_id'] = teacher_user_id
    for field in ('section', 'session', 'batch', 'academic_year'):
        if field in data:
            updates[field] = _clean_or_none(data.get(field))
    if 'term' in data:
        term = _clean(data.get('term'))
        if not terms.is_valid_term(term):
            raise ApiError(400, f'Invalid term "{term}"')
        updates['term'] = term
    if 'is_active' in data:
        updates['is_active'] = _as_bool(data.get('is_active'))
    if not updates:
        raise ApiError(400, 'No fields to update')

    offering = db.session.get(CourseOffering, offering_id)
    if not offering:
        raise ApiError(404, 'Offering not found')
    new_teacher = updates.get('teacher_user_id')
    if new_teacher and new_teacher != offering.teacher_user_id:
        clash = CourseOffering.query.filter_by(course_id=offering.course_id, teacher_user_id=new_teacher).first()
        if clash:
            raise ApiError(409, 'This teacher is already assigned to this course')
    for field, value in updates.items():
        setattr(offering, field, value)
    db.session.commit()
    return _ok(offering.to_dict())


@app.route('/api/course-offerings', methods=['DELETE'])
@api_roles_required(ADMIN)
def api_delete_course_offering():
    offering_id = request.args.get('id', '').strip()
    if not offering_id:
        raise ApiError(400, 'Offering ID is required')
    offering = db.session.get(CourseOffering, offering_id)
    if not offering:
        raise ApiError(404, 'Offering not found')
    db.session.delete(offering)
    db.session.commit()
    logger.info(f"Removed offering {offering_id}")
    return _ok()


# --- Routine slots ---

def routine_slots_for(term=None, section=None):
    """Slot dicts ordered by day and start time, filtered by the term derived from the course code."""
    q = RoutineSlot.query
    if section:
        q = q.filter(RoutineSlot.section == section)
    slots = q.order_by(RoutineSlot.day_of_week, RoutineSlot.start_time).all()
    if term:
        slots = [s for s in slots if terms.term_from_course_code(s.offering.course.code) == term]
    return [s.to_dict() for s in slots]


def _parse_slot_time_fields(data, existing=None):
    def pick(field):
        if field in data and data.get(field) not in (None, ''):
            return data.get(field)
        return getattr(existing, field) if existing is not None else None

    room_number = _clean(pick('room_number'))
    day = pick('day_of_week')
    start_time = pick('start_time')
    end_time = pick('end_time')
    if not room_number or day is None or not start_time or not end_time:
        raise ApiError(400, 'Required: offering_id, room_number, day_of_week, start_time, end_time')
    try:
        day = int(day)
    except (TypeError, ValueError):
        raise ApiError(400, 'day_of_week must be an integer between 0 and 6')
    if day not in routine.ALL_DAYS:
        raise ApiError(400, 'day_of_week must be an integer between 0 and 6')
    try:
        start_time = routine.normalize_time(str(start_time))
        end_time = routine.normalize_time(str(end_time))
    except ValueError as e:
        raise ApiError(400, str(e))
    if routine.time_to_minutes(start_time) >= routine.time_to_minutes(end_time):
        raise ApiError(400, 'start_time must be before end_time')
    if not db.session.get(Room, room_number):
        raise ApiError(404, 'Room not found')
    return room_number, day, start_time, end_time


def _room_conflicts(room_number, day, start_time, end_time, course_id, exclude_ids=()):
    """Slots in the room overlapping the window. Slots of the same course are combined classes, not conflicts."""
    candidates = RoutineSlot.query.filter_by(room_number=room_number, day_of_week=day).all()
    return [
        s for s in candidates
        if s.id not in exclude_ids
        and routine.times_overlap(s.start_time, s.end_time, start_time, end_time)
        and s.offering.course_id != course_id
    ]


@app.route('/api/routine-slots', methods=['GET'])
@api_roles_required(*ALL_ROLES)
def api_routine_slots():
    # session is accepted for compatibility; offerings carry the term in the course code
    term = request.args.get('term', '').strip() or None
    section = request.args.get('section', '').strip() or None
    return jsonify(routine_slots_for(term, section))


@app.route('/api/routine-slots/grid', methods=['GET'])
@api_roles_required(*ALL_ROLES)
def api_routine_grid():
    term = request.args.get('term', '').strip() or None
    section = request.args.get('section', '').strip() or None
    display = routine.group_slots_for_display(routine_slots_for(term, section))
    return jsonify({
        'days': routine.DAYS,
        'periods': routine.PERIODS,
        'break_after_period': routine.BREAK_AFTER_PERIOD,
        'slots': display,
        'grid': routine.build_routine_grid(display),
    })


@app.route('/api/routine-slots', methods=['POST'])
@api_roles_required(ADMIN)
def api_add_routine_slot():
    data = _body()
    combined = isinstance(data.get('offering_ids'), list)
    offering_ids = data.get('offering_ids') if combined else [data.get('offering_id')]
    offering_ids = [_clean(o) for o in offering_ids if _clean(o)]
    if not offering_ids:
        raise ApiError(400, 'Required: offering_id, room_number, day_of_week, start_time, end_time')
    room_number, day, start_time, end_time = _parse_slot_time_fields(data)

    offerings = []
    for offering_id in offering_ids:
        offering = db.session.get(CourseOffering, offering_id)
        if not offering:
            raise ApiError(404, f'Offering {offering_id} not found')
        offerings.append(offering)
    course_ids = {o.course_id for o in offerings}
    if len(course_ids) > 1:
        raise ApiError(400, 'Combined slots must belong to the same course')

    if _room_conflicts(room_number, day, start_time, end_time, offerings[0].course_id):
        raise ApiError(409, 'Room is already booked for this time slot')

    section = _clean_or_none(data.get('section'))
    slots = []
    for offering in offerings:
        slot = RoutineSlot(
            offering_id=offering.id,
            room_number=room_number,
            day_of_week=day,
            start_time=start_time,
            end_time=end_time,
            section=section,
        )
        db.session.add(slot)
        slots.append(slot)
    db.session.commit()
    logger.info(f"Added {len(slots)} routine slot(s) in {room_number} day={day} {start_time}-{end_time}")
    if combined:
        return _ok([s.to_dict() for s in slots], 201)
    return _ok(slots[0].to_dict(), 201)


@app.route('/api/routine-slots', methods=['PATCH'])
@api_roles_required(ADMIN)
def api_update_routine_slot():
    data = _body()
    slot_id = _clean(data.get('id'))
    if not slot_id:
        raise ApiError(400, 'id is required')
    slot = db.session.get(RoutineSlot, slot_id)
    if not slot:
        raise ApiError(404, 'Slot not found')

    offering = slot.offering
    if data.get('offering_id'):
        offering = db.session.get(CourseOffering, _clean(data.get('offering_id')))
        if not offering:
            raise ApiError(404, 'Offering not found')
    room_number, day, start_time, end_time = _parse_slot_time_fields(data, existing=slot)
    if _room_conflicts(room_number, day, start_time, end_time, offering.course_id, exclude_ids=(slot.id,)):
        raise ApiError(409, 'Room conflict at this time')

    slot.offering_id = offering.id
    slot.room_number = room_number
    slot.day_of_week = day
    slot.start_time = start_time
    slot.end_time = end_time
    if 'section' in data:
        slot.section = _clean_or_none(data.get('section'))
    db.session.commit()
    return _ok(slot.to_dict())


@app.route('/api/routine-slots', methods=['DELETE'])
@api_roles_required(ADMIN)
def api_delete_routine_slot():
    raw = request.args.get('id', '').strip()
    ids = [i.strip() for i in raw.split(',') if i.strip()]
    if not ids:
        raise ApiError(400, 'id is required')
    slots = RoutineSlot.query.filter(RoutineSlot.id.in_(ids)).all()
    if not slots:
        raise ApiError(404, 'Slot not found')
    for slot in slots:
        db.session.delete(slot)
    db.session.commit()
    logger.info(f"Deleted routine slot(s) {', '.join(ids)}")
    return _ok(deleted=len(slots))


# --- Term upgrade requests ---

@app.route('/api/term-upgrades', methods=['GET'])
@api_roles_required(ADMIN, STUDENT)
def api_term_upgrades():
    q = TermUpgradeRequest.query
    student_user_id = request.args.get('studentUserId', '').strip()
    status = request.args.get('status', '').strip()
    if session.get('role') == STUDENT:
        student_user_id = session.get('user_id') or ''
    if student_user_id:
        q = q.filter(TermUpgradeRequest.student_user_id == student_user_id)
    if status:
        if status not in REQUEST_STATUSES:
            raise ApiError(400, f'status must be one of: {", ".join(REQUEST_STATUSES)}')
        q = q.filter(TermUpgradeRequest.status == status)
    requests = q.order_by(TermUpgradeRequest.requested_at.desc()).all()
    return jsonify([r.to_dict(with_student=True) for r in requests])


@app.route('/api/term-upgrades', methods=['POST'])
@api_roles_required(ADMIN, STUDENT)
def api_submit_term_upgrade():
    data = _body()
    student_user_id = _clean(data.get('student_user_id'))
    current_term = _clean(data.get('current_term'))
    requested_term = _clean(data.get('requested_term'))
    if not student_user_id or not current_term or not requested_term:
        raise ApiError(400, 'student_user_id, current_term, and requested_term are required')
    if session.get('role') == STUDENT and session.get('user_id') != student_user_id:
        raise ApiError(403, 'Students can only request upgrades for themselves')
    for value in (current_term, requested_term):
        if not terms.is_valid_term(value):
            raise ApiError(400, f'Invalid term "{value}". Must be one of: {", ".join(terms.TERM_ORDER)}')
    if not terms.is_valid_upgrade(current_term, requested_term):
        raise ApiError(400, 'Requested term must be after the current term')

    student = db.session.get(Student, student_user_id)
    if not student:
        raise ApiError(404, 'Student not found')
    if student.term != current_term:
        raise ApiError(400, f'Student is currently in term {student.term}')
    pending = TermUpgradeRequest.query.filter_by(student_user_id=student_user_id, status='pending').first()
    if pending:
        raise ApiError(409, 'You already have a pending term upgrade request')

    upgrade = TermUpgradeRequest(
        student_user_id=student_user_id,
        current_term=current_term,
        requested_term=requested_term,
        reason=_clean_or_none(data.get('reason')),
        status='pending',
    )
    db.session.add(upgrade)
    db.session.commit()
    logger.info(f"Term upgrade requested for {student.roll_no}: {current_term}->{requested_term}")
    return _ok(upgrade.to_dict(), 201)


@app.route('/api/term-upgrades', methods=['PATCH'])
@api_roles_required(ADMIN)
def api_review_term_upgrade():
    data = _body()
    request_id = _clean(data.get('id'))
    status = _clean(data.get('status'))
    if not request_id or not status:
        raise ApiError(400, 'id and status are required')
    if status not in ('approved', 'rejected'):
        raise ApiError(400, 'status must be "approved" or "rejected"')

    upgrade = db.session.get(TermUpgradeRequest, request_id)
    if not upgrade:
        raise ApiError(404, 'Request not found')
    if upgrade.status != 'pending':
        raise ApiError(400, 'This request has already been reviewed')

    admin_user_id = _clean(data.get('admin_user_id'))
    if not UUID_RE.match(admin_user_id):
        admin_user_id = _actor_user_id()
    now = datetime.utcnow()
    # Conditional update so a request is reviewed once even under concurrent reviews
    claimed = (TermUpgradeRequest.query
               .filter_by(id=request_id, status='pending')
               .update({
                   'status': status,
                   'admin_user_id': admin_user_id,
                   'admin_remarks': _clean_or_none(data.get('admin_remarks')),
                   'reviewed_at': now,
                   'updated_at': now,
               }, synchronize_session='fetch'))
    if not claimed:
        db.session.rollback()
        raise ApiError(400, 'This request has already been reviewed')
    if status == 'approved':
        student = db.session.get(Student, upgrade.student_user_id)
        if not student:
            db.session.rollback()
            raise ApiError(404, 'Student not found')
        student.term = upgrade.requested_term
    db.session.commit()
    logger.info(f"Term upgrade {request_id} {status}")
    _audit(f'term_upgrade_{status}', f'term_upgrade:{request_id}',
           f'{upgrade.current_term}->{upgrade.requested_term}')
    return _ok(upgrade.to_dict(with_student=True), status=200)


@app.route('/api/term-upgrades', methods=['DELETE'])
@api_roles_required(ADMIN, STUDENT)
def api_delete_term_upgrade():
    request_id = request.args.get('id', '').strip()
    if not request_id:
        raise ApiError(400, 'id is required')
    upgrade = db.session.get(TermUpgradeRequest, request_id)
    if not upgrade:
        raise ApiError(404, 'Request not found')
    if session.get('role') == STUDENT and session.get('user_id') != upgrade.student_user_id:
        raise ApiError(403, 'Students can only withdraw their own requests')
    if upgrade.status != 'pending':
        raise ApiError(400, 'Only pending requests can be deleted')
    db.session.delete(upgrade)
    db.session.commit()
    return _ok()


# --- Results ---

def _results_query(course_id, section):
    q = Result.query.join(Student)
    if course_id:
        q = q.filter(Result.course_id == course_id)
    if section:
        q = q.filter(Student.section == section)
    return q.order_by(Student.roll_no)


@app.route('/api/results', methods=['GET'])
@api_roles_required(ADMIN, TEACHER)
def api_results():
    course_id = request.args.get('course_id', '').strip()
    section = request.args.get('section', '').strip()
    return jsonify([r.to_dict() for r in _results_query(course_id, section).all()])


@app.route('/api/results/stats', methods=['GET'])
@api_roles_required(ADMIN, TEACHER)
def api_result_stats():
    course_id = request.args.get('course_id', '').strip()
    section = request.args.get('section', '').strip()
    totals = [results.calculate_total(r) for r in _results_query(course_id, section).all()]
    return jsonify(results.result_stats(totals, pass_mark=app.config.get('RESULT_PASS_MARK', results.PASS_MARK)))


@app.route('/api/results', methods=['POST'])
@api_roles_required(ADMIN, TEACHER)
def api_save_result():
    data = _body()
    student_user_id = _clean(data.get('student_user_id'))
    course_id = _clean(data.get('course_id'))
    if not student_user_id or not course_id:
        raise ApiError(400, 'Required fields: student_user_id, course_id')
    marks, errors = results.validate_marks(data)
    if errors:
        detail = '; '.join(f'{k} {v}' for k, v in errors.items())
        raise ApiError(400, f'Invalid marks: {detail}')
    if not db.session.get(Student, student_user_id):
        raise ApiError(404, 'Student not found')
    if not db.session.get(Course, course_id):
        raise ApiError(404, 'Course not found')

    result = Result.query.filter_by(student_user_id=student_user_id, course_id=course_id).first()
    created = result is None
    if created:
        result = Result(student_user_id=student_user_id, course_id=course_id)
        db.session.add(result)
    for field, value in marks.items():
        setattr(result, field, value)
    _commit_or_conflict(lambda _m: 'Result already recorded for this student and course')
    return _ok(result.to_dict(), 201 if created else 200)


@app.route('/api/results', methods=['DELETE'])
@api_roles_required(ADMIN)
def api_delete_result():
    result_id = request.args.get('id', '').strip()
    if not result_id:
        raise ApiError(400, 'id is required')
    result = db.session.get(Result, result_id)
    if not result:
        raise ApiError(404, 'Result not found')
    db.session.delete(result)
    db.session.commit()
    return _ok()


# --- TV display announcements ---

def _announcement_fields(data, announcement):
    if 'title' in data:
        announcement.title = _clean(data.get('title'))
    if 'content' in data:
        announcement.content = _clean(data.get('content'))
    if 'type' in data:
        kind = _clean(data.get('type')) or 'notice'
        if kind not in ANNOUNCEMENT_TYPES:
            raise ApiError(400, f'type must be one of: {", ".join(ANNOUNCEMENT_TYPES)}')
        announcement.type = kind
    if 'priority' in data:
        priority = _clean(data.get('priority')) or 'medium'
        if priority not in PRIORITIES:
            raise ApiError(400, f'priority must be one of: {", ".join(PRIORITIES)}')
        announcement.priority = priority
    if 'course_code' in data:
        announcement.course_code = _clean_or_none(data.get('course_code'))
    if 'scheduled_date' in data:
        raw = _clean(data.get('scheduled_date'))
        try:
            announcement.scheduled_date = datetime.strptime(raw, '%Y-%m-%d').date() if raw else None
        except ValueError:
            raise ApiError(400, 'scheduled_date must be YYYY-MM-DD')
    if not announcement.title or not announcement.content:
        raise ApiError(400, 'Required fields: title, content')


def active_announcements():
    order = {p: i for i, p in enumerate(reversed(PRIORITIES))}
    items = Announcement.query.filter_by(is_active=True).order_by(Announcement.created_at.desc()).all()
    return sorted(items, key=lambda a: order.get(a.priority, len(order)))


@app.route('/api/announcements', methods=['GET'])
@api_roles_required(*ALL_ROLES)
def api_announcements():
    active = request.args.get('active', '').strip()
    if active and _as_bool(active):
        items = active_announcements()
    else:
        items = Announcement.query.order_by(Announcement.created_at.desc()).all()
    return jsonify([a.to_dict() for a in items])


@app.route('/api/announcements', methods=['POST'])
@api_roles_required(ADMIN)
def api_add_announcement():
    data = _body()
    announcement = Announcement(type='notice', priority='medium', is_active=True, created_by=session.get('user'))
    _announcement_fields(data, announcement)
    db.session.add(announcement)
    db.session.commit()
    return _ok(announcement.to_dict(), 201)


@app.route('/api/announcements', methods=['PATCH'])
@api_roles_required(ADMIN)
def api_update_announcement():
    data = _body()
    announcement = db.session.get(Announcement, _required_id(data))
    if not announcement:
        raise ApiError(404, 'Announcement not found')
    try:
        _announcement_fields(data, announcement)
    except ApiError:
        db.session.rollback()
        raise
    db.session.commit()
    return _ok(announcement.to_dict())


@app.route('/api/announcements/toggle', methods=['POST'])
@api_roles_required(ADMIN)
def api_toggle_announcement():
    data = _body()
    announcement = db.session.get(Announcement, _required_id(data))
    if not announcement:
        raise ApiError(404, 'Announcement not found')
    announcement.is_active = not announcement.is_active
    db.session.commit()
    return _ok(announcement.to_dict())


@app.route('/api/announcements', methods=['DELETE'])
@api_roles_required(ADMIN)
def api_delete_announcement():
    announcement_id = request.args.get('id', '').strip()
    if not announcement_id:
        raise ApiError(400, 'id is required')
    announcement = db.session.get(Announcement, announcement_id)
    if not announcement:
        raise ApiError(404, 'Announcement not found')
    db.session.delete(announcement)
    db.session.commit()
    return _ok()


# --- Website CMS ---

def _cms_table(table):
    entry = cms.CMS_TABLES.get(table)
    if not entry:
        raise ApiError(404, f'Unknown CMS table "{table}"')
    return entry


def _coerce_cms_value(column, value):
    if value in ('', None):
        return None
    if isinstance(column.type, DateTime) and isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            raise ApiError(400, f'{column.name} must be an ISO date-time')
    if isinstance(column.type, Date) and isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError:
            raise ApiError(400, f'{column.name} must be YYYY-MM-DD')
    if isinstance(column.type, Boolean):
        return _as_bool(value)
    if isinstance(column.type, (Integer, Float)) and isinstance(value, str):
        try:
            return int(value) if isinstance(column.type, Integer) else float(value)
        except ValueError:
            raise ApiError(400, f'{column.name} must be a number')
    if isinstance(column.type, JSON) and isinstance(value, str):
        return [item.strip() for item in value.split(',') if item.strip()]
    return value


def _apply_cms_payload(model, record, data, creating):
    columns = {c.name: c for c in model.__table__.columns}
    values = {}
    missing = []
    for name in cms.writable_columns(model):
        column = columns[name]
        if name not in data:
            if creating and not column.nullable and column.default is None:
                missing.append(name)
            continue
        value = _coerce_cms_value(column, data[name])
        if value is None and not column.nullable:
            # Column defaults only fill in on insert.
            if creating and column.default is not None:
                continue
            missing.append(name)
            continue
        values[name] = value
    if missing:
        raise ApiError(400, f'Required fields: {", ".join(missing)}')
    for name, value in values.items():
        setattr(record, name, value)


@app.route('/api/cms/<table>', methods=['GET'])
@api_roles_required(ADMIN)
def api_cms_list(table):
    model, order_by, _toggles = _cms_table(table)
    rows = model.query.order_by(getattr(model, order_by)).all()
    return jsonify([r.to_dict() for r in rows])


@app.route('/api/cms/<table>', methods=['POST'])
@api_roles_required(ADMIN)
def api_cms_create(table):
    model, _order_by, _toggles = _cms_table(table)
    record = model()
    _apply_cms_payload(model, record, _body(), creating=True)
    db.session.add(record)
    _commit_or_conflict(lambda _m: f'A {table} entry with these values already exists')
    logger.info(f"CMS insert into {table}")
    return _ok(record.to_dict(), 201)


@app.route('/api/cms/<table>', methods=['PATCH'])
@api_roles_required(ADMIN)
def api_cms_update(table):
    model, _order_by, _toggles = _cms_table(table)
    data = _body()
    record = db.session.get(model, _required_id(data))
    if not record:
        raise ApiError(404, 'Entry not found')
    try:
        _apply_cms_payload(model, record, data, creating=False)
    except ApiError:
        db.session.rollback()
        raise
    _commit_or_conflict(lambda _m: f'A {table} entry with these values already exists')
    return _ok(record.to_dict())


@app.route('/api/cms/<table>/toggle', methods=['POST'])
@api_roles_required(ADMIN)
def api_cms_toggle(table):
    model, _order_by, toggles = _cms_table(table)
    data = _body()
    field = _clean(data.get('field')) or (toggles[0] if toggles else '')
    if field not in toggles:
        raise ApiError(400, f'{table} has no toggle "{field}"')
    record = db.session.get(model, _required_id(data))
    if not record:
        raise ApiError(404, 'Entry not found')
    setattr(record, field, not getattr(record, field))
    db.session.commit()
    return _ok(record.to_dict())


@app.route('/api/cms/<table>', methods=['DELETE'])
@api_roles_required(ADMIN)
def api_cms_delete(table):
    model, _order_by, _toggles = _cms_table(table)
    record_id = request.args.get('id', '').strip()
    if not record_id:
        raise ApiError(400, 'id is required')
    record = db.session.get(model, record_id)
    if not record:
        raise ApiError(404, 'Entry not found')
    db.session.delete(record)
    db.session.commit()
    logger.info(f"CMS delete from {table}: {record_id}")
    return _ok()
