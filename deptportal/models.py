from deptportal import db
from datetime import datetime
import uuid


def _uuid():
    return str(uuid.uuid4())


def _iso(value):
    return value.isoformat() if value is not None else None


class Profile(db.Model):
    __tablename__ = 'profiles'
    user_id = db.Column(db.String(36), primary_key=True, default=_uuid)
    role = db.Column(db.String(20), nullable=False, default='STUDENT')  # ADMIN, TEACHER, STUDENT
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_login = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'user_id': self.user_id,
            'role': self.role,
            'email': self.email,
            'is_active': self.is_active,
            'last_login': _iso(self.last_login),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }

    def __repr__(self):
        return f"Profile('{self.email}', role='{self.role}')"


class Teacher(db.Model):
    __tablename__ = 'teachers'
    user_id = db.Column(db.String(36), db.ForeignKey('profiles.user_id'), primary_key=True)
    teacher_uid = db.Column(db.String(20), unique=True, nullable=False)
    full_name = db.Column(db.String(120), nullable=False)
    phone = db.Column(db.String(20))
    designation = db.Column(db.String(30), nullable=False, default='LECTURER')
    department = db.Column(db.String(100), default='CSE')
    office_room = db.Column(db.String(50))
    is_on_leave = db.Column(db.Boolean, nullable=False, default=False)
    leave_reason = db.Column(db.String(200))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    profile = db.relationship('Profile', backref=db.backref('teacher', uselist=False), lazy=True)
    offerings = db.relationship('CourseOffering', backref='teacher', lazy=True, cascade="all, delete-orphan")

    def to_dict(self, with_profile=False):
        data = {
            'user_id': self.user_id,
            'teacher_uid': self.teacher_uid,
            'full_name': self.full_name,
            'phone': self.phone,
            'designation': self.designation,
            'department': self.department,
            'office_room': self.office_room,
            'is_on_leave': self.is_on_leave,
            'leave_reason': self.leave_reason,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }
        if with_profile:
            data['profile'] = self.profile.to_dict() if self.profile else None
        return data

    def __repr__(self):
        return f"Teacher('{self.full_name}', uid='{self.teacher_uid}')"


class Student(db.Model):
    __tablename__ = 'students'
    user_id = db.Column(db.String(36), db.ForeignKey('profiles.user_id'), primary_key=True)
    roll_no = db.Column(db.String(20), unique=True, nullable=False)
    full_name = db.Column(db.String(120), nullable=False)
    phone = db.Column(db.String(20))
    term = db.Column(db.String(3), nullable=False, default='1-1')
    session = db.Column(db.String(20), nullable=False)
    batch = db.Column(db.String(10))
    section = db.Column(db.String(5))
    cgpa = db.Column(db.Float, nullable=False, default=0.0)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    profile = db.relationship('Profile', backref=db.backref('student', uselist=False), lazy=True)
    upgrade_requests = db.relationship('TermUpgradeRequest', backref='student', lazy=True, cascade="all, delete-orphan")
    results = db.relationship('Result', backref='student', lazy=True, cascade="all, delete-orphan")

    def to_dict(self, with_profile=False):
        data = {
            'user_id': self.user_id,
            'roll_no': self.roll_no,
            'full_name': self.full_name,
            'phone': self.phone,
            'term': self.term,
            'session': self.session,
            'batch': self.batch,
            'section': self.section,
            'cgpa': self.cgpa,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }
        if with_profile:
            data['profile'] = self.profile.to_dict() if self.profile else None
        return data

    def __repr__(self):
        return f"Student('{self.full_name}', roll='{self.roll_no}', term='{self.term}')"


class Course(db.Model):
    __tablename__ = 'courses'
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    code = db.Column(db.String(20), unique=True, nullable=False)
    title = db.Column(db.String(200), nullable=False)
    credit = db.Column(db.Float, nullable=False)
    course_type = db.Column(db.String(20), nullable=False, default='Theory')  # Theory, Lab, Sessional
    description = db.Column(db.Text)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    offerings = db.relationship('CourseOffering', backref='course', lazy=True, cascade="all, delete-orphan")
    results = db.relationship('Result', backref='course', lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'title': self.title,
            'credit': self.credit,
            'course_type': self.course_type,
            'description': self.description,
            'created_at': _iso(self.created_at),
        }

    def __repr__(self):
        return f"Course('{self.code}', credit={self.credit})"


class CourseOffering(db.Model):
    __tablename__ = 'course_offerings'
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    course_id = db.Column(db.String(36), db.ForeignKey('courses.id'), nullable=False)
    teacher_user_id = db.Column(db.String(36), db.ForeignKey('teachers.user_id'), nullable=False)
    term = db.Column(db.String(3))
    session = db.Column(db.String(20))
    batch = db.Column(db.String(10))
    section = db.Column(db.String(5))
    academic_year = db.Column(db.String(20))
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    slots = db.relationship('RoutineSlot', backref='offering', lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        teacher = None
        if self.teacher is not None:
            teacher = {
                'user_id': self.teacher.user_id,
                'teacher_uid': self.teacher.teacher_uid,
                'full_name': self.teacher.full_name,
                'department': self.teacher.department,
                'designation': self.teacher.designation,
                'email': self.teacher.profile.email if self.teacher.profile else None,
                'phone': self.teacher.phone,
            }
        return {
            'id': self.id,
            'course_id': self.course_id,
            'teacher_user_id': self.teacher_user_id,
            'term': self.term,
            'session': self.session,
            'batch': self.batch,
            'section': self.section,
            'academic_year': self.academic_year,
            'is_active': self.is_active,
            'created_at': _iso(self.created_at),
            'courses': self.course.to_dict() if self.course else None,
            'teachers': teacher,
        }

    def __repr__(self):
        return f"CourseOffering(course_id={self.course_id}, teacher={self.teacher_user_id}, section={self.section})"


class Room(db.Model):
    __tablename__ = 'rooms'
    room_number = db.Column(db.String(20), primary_key=True)
    building_name = db.Column(db.String(100))
    capacity = db.Column(db.Integer)
    room_type = db.Column(db.String(20))  # classroom, lab, seminar, research
    facilities = db.Column(db.JSON)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    slots = db.relationship('RoutineSlot', backref='room', lazy=True)

    def to_dict(self):
        return {
            'room_number': self.room_number,
            'building_name': self.building_name,
            'capacity': self.capacity,
            'room_type': self.room_type,
            'facilities': self.facilities or [],
            'is_active': self.is_active,
        }

    def __repr__(self):
        return f"Room('{self.room_number}', type='{self.room_type}')"


class RoutineSlot(db.Model):
    __tablename__ = 'routine_slots'
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    offering_id = db.Column(db.String(36), db.ForeignKey('course_offerings.id'), nullable=False)
    room_number = db.Column(db.String(20), db.ForeignKey('rooms.room_number'), nullable=False)
    day_of_week = db.Column(db.Integer, nullable=False)  # 0=Sun .. 6=Sat
    start_time = db.Column(db.String(5), nullable=False)  # HH:MM
    end_time = db.Column(db.String(5), nullable=False)
    section = db.Column(db.String(5))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        offering = self.offering
        offering_data = None
        if offering is not None:
            course = offering.course
            teacher = offering.teacher
            offering_data = {
                'id': offering.id,
                'term': offering.term,
                'session': offering.session,
                'batch': offering.batch,
                'courses': {
                    'code': course.code,
                    'title': course.title,
                    'credit': course.credit,
                    'course_type': course.course_type,
                } if course else None,
                'teachers': {
                    'full_name': teacher.full_name,
                    'teacher_uid': teacher.teacher_uid,
                } if teacher else None,
            }
        return {
            'id': self.id,
            'offering_id': self.offering_id,
            'room_number': self.room_number,
            'day_of_week': self.day_of_week,
            'start_time': self.start_time,
            'end_time': self.end_time,
            'section': self.section,
            'created_at': _iso(self.created_at),
            'course_offerings': offering_data,
            'rooms': {
                'room_number': self.room.room_number,
                'room_type': self.room.room_type,
            } if self.room else None,
        }

    def __repr__(self):
        return f"RoutineSlot(room='{self.room_number}', day={self.day_of_week}, {self.start_time}-{self.end_time})"


class TermUpgradeRequest(db.Model):
    __tablename__ = 'term_upgrade_requests'
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    student_user_id = db.Column(db.String(36), db.ForeignKey('students.user_id'), nullable=False)
    current_term = db.Column(db.String(3), nullable=False)
    requested_term = db.Column(db.String(3), nullable=False)
    status = db.Column(db.String(20), nullable=False, default='pending')  # pending, approved, rejected
    reason = db.Column(db.Text)
    admin_user_id = db.Column(db.String(36))
    admin_remarks = db.Column(db.Text)
    requested_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    reviewed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self, with_student=False):
        data = {
            'id': self.id,
            'student_user_id': self.student_user_id,
            'current_term': self.current_term,
            'requested_term': self.requested_term,
            'status': self.status,
            'reason': self.reason,
            'admin_user_id': self.admin_user_id,
            'admin_remarks': self.admin_remarks,
            'requested_at': _iso(self.requested_at),
            'reviewed_at': _iso(self.reviewed_at),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }
        if with_student and self.student is not None:
            s = self.student
            data['students'] = {
                'full_name': s.full_name,
                'roll_no': s.roll_no,
                'term': s.term,
                'session': s.session,
                'batch': s.batch,
                'section': s.section,
                'cgpa': s.cgpa,
            }
        return data

    def __repr__(self):
        return f"TermUpgradeRequest({self.current_term}->{self.requested_term}, status='{self.status}')"


class Result(db.Model):
    __tablename__ = 'results'
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    student_user_id = db.Column(db.String(36), db.ForeignKey('students.user_id'), nullable=False)
    course_id = db.Column(db.String(36), db.ForeignKey('courses.id'), nullable=False)
    ct1 = db.Column(db.Float, nullable=False, default=0)
    ct2 = db.Column(db.Float, nullable=False, default=0)
    ct3 = db.Column(db.Float, nullable=False, default=0)
    attendance = db.Column(db.Float, nullable=False, default=0)
    assignment = db.Column(db.Float, nullable=False, default=0)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    __table_args__ = (db.UniqueConstraint('student_user_id', 'course_id', name='uix_result_student_course'),)

    def to_dict(self):
        from deptportal.results import calculate_total, get_grade
        total = calculate_total(self)
        return {
            'id': self.id,
            'student_user_id': self.student_user_id,
            'course_id': self.course_id,
            'roll_no': self.student.roll_no if self.student else None,
            'full_name': self.student.full_name if self.student else None,
            'section': self.student.section if self.student else None,
            'ct1': self.ct1,
            'ct2': self.ct2,
            'ct3': self.ct3,
            'attendance': self.attendance,
            'assignment': self.assignment,
            'total': total,
            'grade': get_grade(total),
            'updated_at': _iso(self.updated_at),
        }

    def __repr__(self):
        return f"Result(student={self.student_user_id}, course={self.course_id})"


class Announcement(db.Model):
    __tablename__ = 'announcements'
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    title = db.Column(db.String(200), nullable=False)
    content = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(20), nullable=False, default='notice')
    course_code = db.Column(db.String(20))
    priority = db.Column(db.String(10), nullable=False, default='medium')  # low, medium, high
    scheduled_date = db.Column(db.Date)
    created_by = db.Column(db.String(120))
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'content': self.content,
            'type': self.type,
            'course_code': self.course_code,
            'priority': self.priority,
            'scheduled_date': _iso(self.scheduled_date),
            'created_by': self.created_by,
            'is_active': self.is_active,
            'created_at': _iso(self.created_at),
        }

    def __repr__(self):
        return f"Announcement('{self.title}', priority='{self.priority}')"


class AuditLog(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(50), nullable=False)
    actor = db.Column(db.String(120), nullable=True)
    actor_role = db.Column(db.String(20), nullable=True)
    target = db.Column(db.String(120), nullable=True)
    details = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self):
        return f"AuditLog(action='{self.action}', actor='{self.actor}', target='{self.target}')"


# --- Website CMS content ---

class CmsRecord:
    """Column-wise dict conversion shared by the CMS tables."""

    def to_dict(self):
        data = {}
        for column in self.__table__.columns:
            value = getattr(self, column.name)
            if hasattr(value, 'isoformat'):
                value = value.isoformat()
            data[column.name] = value
        return data


class CmsHeroSlide(CmsRecord, db.Model):
    __tablename__ = 'cms_hero_slides'
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    image_path = db.Column(db.String(255), nullable=False)
    title = db.Column(db.String(200))
    subtitle = db.Column(db.String(300))
    cta_text = db.Column(db.String(60))
    cta_link = db.Column(db.String(255))
    display_order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class CmsDepartmentInfo(CmsRecord, db.Model):
    __tablename__ = 'cms_department_info'
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    key = db.Column(db.String(100), unique=True, nullable=False)
    value = db.Column(db.Text)
    value_type = db.Column(db.String(20), nullable=False, default='text')
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class CmsHodMessage(CmsRecord, db.Model):
    __tablename__ = 'cms_hod_message'
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(120), nullable=False)
    designation = db.Column(db.String(120), nullable=False)
    photo_path = db.Column(db.String(255))
    message = db.Column(db.Text, nullable=False)
    tenure_start = db.Column(db.Date)
    tenure_end = db.Column(db.Date)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class CmsStat(CmsRecord, db.Model):
    __tablename__ = 'cms_stats'
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    label = db.Column(db.String(100), nullable=False)
    value = db.Column(db.String(50), nullable=False)
    icon = db.Column(db.String(50))
    display_order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class CmsNewsEvent(CmsRecord, db.Model):
    __tablename__ = 'cms_news_events'
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    title = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(200), unique=True)
    excerpt = db.Column(db.String(500))
    body = db.Column(db.Text)
    image_path = db.Column(db.String(255))
    category = db.Column(db.String(20), nullable=False, default='NEWS')  # NEWS, EVENT, ACTIVITY
    is_featured = db.Column(db.Boolean, nullable=False, default=False)
    published_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class CmsResearchHighlight(CmsRecord, db.Model):
    __tablename__ = 'cms_research_highlights'
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    image_path = db.Column(db.String(255))
    category = db.Column(db.String(20), nullable=False, default='PUBLICATION')
    external_link = db.Column(db.String(255))
    display_order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)


class CmsLabFacility(CmsRecord, db.Model):
    __tablename__ = 'cms_lab_facilities'
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text)
    image_path = db.Column(db.String(255))
    room_number = db.Column(db.String(20))
    equipment = db.Column(db.JSON)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)


class CmsClubActivity(CmsRecord, db.Model):
    __tablename__ = 'cms_clubs_activities'
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text)
    logo_path = db.Column(db.String(255))
    external_link = db.Column(db.String(255))
    display_order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)


class CmsGalleryItem(CmsRecord, db.Model):
    __tablename__ = 'cms_gallery'
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    image_path = db.Column(db.String(255), nullable=False)
    caption = db.Column(db.String(300))
    category = db.Column(db.String(20), nullable=False, default='GENERAL')  # CAMPUS, EVENT, LAB, GENERAL
    display_order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)


class CmsNavigationLink(CmsRecord, db.Model):
    __tablename__ = 'cms_navigation_links'
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    label = db.Column(db.String(100), nullable=False)
    url = db.Column(db.String(255), nullable=False)
    section = db.Column(db.String(50), nullable=False, default='header')
    icon = db.Column(db.String(50))
    display_order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)


class CmsPageSection(CmsRecord, db.Model):
    __tablename__ = 'cms_page_sections'
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    section_key = db.Column(db.String(50), unique=True, nullable=False)
    title = db.Column(db.String(200))
    subtitle = db.Column(db.String(300))
    is_visible = db.Column(db.Boolean, nullable=False, default=True)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class CmsProgram(CmsRecord, db.Model):
    __tablename__ = 'cms_programs'
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(200), nullable=False)
    short_name = db.Column(db.String(50))
    degree_type = db.Column(db.String(20), nullable=False, default='UNDERGRADUATE')  # UNDERGRADUATE, POSTGRADUATE, PHD
    description = db.Column(db.Text)
    duration = db.Column(db.String(50))
    total_credits = db.Column(db.Float)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
