from flask import render_template, url_for, flash, redirect, request, jsonify, session
from deptportal import app, db
import logging
logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)
from deptportal.models import (
    Profile, Teacher, Student, Course, CourseOffering, Room, TermUpgradeRequest,
    Result, Announcement,
)
from deptportal import terms, routine, results, cms
from werkzeug.security import check_password_hash, generate_password_hash
from functools import wraps
from datetime import datetime
from urllib.parse import urlparse

DASHBOARD_MODULES = [
    ('overview', 'Overview'),
    ('students', 'Students'),
    ('faculty', 'Faculty'),
    ('rooms', 'Rooms'),
    ('courses', 'Courses'),
    ('course-allocation', 'Course Allocation'),
    ('class-routine', 'Class Routine'),
    ('term-upgrade', 'Term Upgrade'),
    ('results', 'Results'),
    ('tv-display', 'TV Display'),
    ('website-cms', 'Website CMS'),
]


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if not session.get('logged_in'):
            flash('Please log in to access this page.', 'warning')
            return redirect(url_for('login', next=request.path))
        return fn(*args, **kwargs)
    return wrapper


def roles_required(*roles):
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if not session.get('logged_in'):
                flash('Please log in to access this page.', 'warning')
                return redirect(url_for('login', next=request.path))
            role = session.get('role')
            if role not in roles:
                flash('You are not authorized to perform this action.', 'danger')
                return redirect(url_for('index'))
            return fn(*args, **kwargs)
        return wrapper
    return decorator


def _database_ready():
    return bool(app.config.get('DATABASE_CONFIGURED'))


def _is_local_url(url):
    if not url or not url.startswith("/") or url.startswith("//") or "\\" in url:
        return False
    parsed = urlparse(url)
    return not parsed.scheme and not parsed.netloc


def _site_data():
    if not _database_ready():
        return {}
    return cms.fetch_landing_page_data()


@app.context_processor
def inject_helpers():
    return {
        'image_url': cms.get_image_url,
        'current_role': session.get('role'),
        'current_user': session.get('user'),
    }


# --- Public site ---

@app.route("/")
def index():
    return render_template('index.html', title='Home', site=_site_data())


@app.route("/about")
def about():
    return render_template('about.html', title='About', site=_site_data())


@app.route("/programs")
def programs():
    return render_template('programs.html', title='Programs', site=_site_data())


@app.route("/faculty")
def faculty():
    faculty_members = []
    if _database_ready():
        faculty_members = (Teacher.query.join(Profile)
                           .filter(Profile.is_active.is_(True))
                           .order_by(Teacher.full_name).all())
    return render_template('faculty.html', title='Faculty', site=_site_data(), faculty=faculty_members)


@app.route("/news")
def news():
    return render_template('news.html', title='News & Events', site=_site_data())


@app.route("/gallery")
def gallery():
    return render_template('gallery.html', title='Gallery', site=_site_data())


@app.route("/research")
def research():
    return render_template('research.html', title='Research', site=_site_data())


@app.route("/facilities")
def facilities():
    return render_template('facilities.html', title='Facilities', site=_site_data())


@app.route("/notices")
def notices():
    from deptportal.api import active_announcements
    items = active_announcements() if _database_ready() else []
    return render_template('notices.html', title='Notices', site=_site_data(), announcements=items)


@app.route("/contact", methods=['GET', 'POST'])
def contact():
    if request.method == 'POST':
        name = request.form.get('name', '').strip()
        email = request.form.get('email', '').strip()
        message = request.form.get('message', '').strip()
        if not name or not email or not message:
            flash('Name, email and message are required.', 'danger')
        else:
            logger.info(f"Contact message from {name} <{email}>")
            flash('Thank you, your message has been received.', 'success')
            return redirect(url_for('contact'))
    return render_template('contact.html', title='Contact', site=_site_data())


@app.route("/tv")
def tv_display():
    from deptportal.api import active_announcements
    items = active_announcements() if _database_ready() else []
    return render_template('tv.html', title='TV Display', announcements=items, now=datetime.utcnow())


# --- Auth ---

@app.route("/login", methods=['GET', 'POST'])
def login():
    if request.method == 'POST':
        if not _database_ready():
            flash('The database is not configured.', 'danger')
            return render_template('login.html', title='Login'), 503
        email = request.form.get('email', '').strip().lower()
        password = request.form.get('password', '')
        profile = Profile.query.filter_by(email=email).first()
        if profile and profile.is_active and check_password_hash(profile.password_hash, password):
            session['logged_in'] = True
            session['user'] = profile.email
            session['user_id'] = profile.user_id
            session['role'] = profile.role
            session.permanent = True
            profile.last_login = datetime.utcnow()
            db.session.commit()
            logger.info(f"Login: {profile.email} ({profile.role})")
            flash('Logged in successfully.', 'success')
            next_url = request.args.get('next')
            if _is_local_url(next_url):
                return redirect(next_url)
            if profile.role == 'STUDENT':
                return redirect(url_for('student_portal'))
            return redirect(url_for('dashboard'))
        if profile and not profile.is_active:
            flash('This account has been deactivated.', 'danger')
        else:
            flash('Invalid credentials.', 'danger')
    return render_template('login.html', title='Login')


@app.route("/logout")
def logout():
    session.clear()
    flash('Logged out.', 'info')
    return redirect(url_for('login'))


@app.route('/change-password', methods=['GET', 'POST'])
@login_required
def change_password():
    profile = db.session.get(Profile, session.get('user_id') or '')
    if not profile:
        flash('Account not found.', 'danger')
        return redirect(url_for('login'))
    if request.method == 'POST':
        current = request.form.get('current_password', '')
        password = request.form.get('password', '')
        confirm = request.form.get('confirm_password', '')
        min_len = app.config.get('PASSWORD_MIN_LENGTH', 6)
        if not check_password_hash(profile.password_hash, current):
            flash('Current password is incorrect.', 'danger')
        elif len(password) < int(min_len):
            flash(f'Password must be at least {min_len} characters.', 'danger')
        elif password != confirm:
            flash('Passwords do not match.', 'danger')
        else:
            profile.password_hash = generate_password_hash(password)
            db.session.commit()
            flash('Password updated.', 'success')
            return redirect(url_for('dashboard') if profile.role != 'STUDENT' else url_for('student_portal'))
    return render_template('change_password.html', title='Change Password')


@app.route('/student')
@roles_required('STUDENT')
def student_portal():
    student = db.session.get(Student, session.get('user_id') or '')
    if not student:
        flash('Student record not found.', 'danger')
        return redirect(url_for('logout'))
    requests = (TermUpgradeRequest.query.filter_by(student_user_id=student.user_id)
                .order_by(TermUpgradeRequest.requested_at.desc()).all())
    return render_template(
        'student.html',
        title='My Portal',
        student=student,
        term=terms.term_info(student.term),
        next_term=terms.get_next_term(student.term),
        requests=requests,
    )


# --- Admin dashboard ---

def _overview_context():
    return {
        'counts': {
            'Students': Student.query.join(Profile).filter(Profile.is_active.is_(True)).count(),
            'Faculty': Teacher.query.join(Profile).filter(Profile.is_active.is_(True)).count(),
            'Courses': Course.query.count(),
            'Rooms': Room.query.count(),
            'Pending term requests': TermUpgradeRequest.query.filter_by(status='pending').count(),
            'Active announcements': Announcement.query.filter_by(is_active=True).count(),
        },
    }


def _students_context():
    term = request.args.get('term', '').strip()
    q = Student.query.join(Profile)
    if term:
        q = q.filter(Student.term == term)
    return {'students': q.order_by(Student.roll_no).all(), 'terms': terms.TERMS, 'selected_term': term}


def _faculty_context():
    return {
        'teachers': Teacher.query.order_by(Teacher.full_name).all(),
        'designations': ['PROFESSOR', 'ASSOCIATE_PROFESSOR', 'ASSISTANT_PROFESSOR', 'LECTURER'],
    }


def _rooms_context():
    return {'rooms': Room.query.order_by(Room.room_number).all()}


def _courses_context():
    return {'courses': Course.query.order_by(Course.code).all()}


def _allocation_context():
    return {
        'offerings': CourseOffering.query.order_by(CourseOffering.created_at.desc()).all(),
        'courses': Course.query.order_by(Course.code).all(),
        'teachers': Teacher.query.order_by(Teacher.full_name).all(),
    }


def _routine_context():
    from deptportal.api import routine_slots_for
    term = request.args.get('term', '').strip() or None
    section = request.args.get('section', '').strip() or None
    display = routine.group_slots_for_display(routine_slots_for(term, section))
    return {
        'grid': routine.build_routine_grid(display),
        'periods': routine.PERIODS,
        'break_after': routine.BREAK_AFTER_PERIOD,
        'terms': terms.TERMS,
        'sections': routine.SECTIONS,
        'selected_term': term or '',
        'selected_section': section or '',
        'offerings': CourseOffering.query.all(),
        'rooms': Room.query.order_by(Room.room_number).all(),
    }


def _term_upgrade_context():
    students = Student.query.join(Profile).filter(Profile.is_active.is_(True)).all()
    return {
        'groups': terms.group_students_by_term(students),
        'pending': (TermUpgradeRequest.query.filter_by(status='pending')
                    .order_by(TermUpgradeRequest.requested_at).all()),
    }


def _results_context():
    course_id = request.args.get('course_id', '').strip()
    rows = []
    stats = None
    if course_id:
        rows = (Result.query.join(Student).filter(Result.course_id == course_id)
                .order_by(Student.roll_no).all())
        stats = results.result_stats(
            [results.calculate_total(r) for r in rows],
            pass_mark=app.config.get('RESULT_PASS_MARK', results.PASS_MARK))
    return {
        'courses': Course.query.order_by(Course.code).all(),
        'selected_course': course_id,
        'results': [r.to_dict() for r in rows],
        'stats': stats,
        'limits': results.MARK_LIMITS,
    }


def _tv_context():
    return {'announcements': Announcement.query.order_by(Announcement.created_at.desc()).all()}


def _cms_context():
    table = request.args.get('table', '').strip()
    if table not in cms.CMS_TABLES:
        table = next(iter(cms.CMS_TABLES))
    model, order_by, toggles = cms.CMS_TABLES[table]
    return {
        'tables': list(cms.CMS_TABLES),
        'table': table,
        'columns': cms.writable_columns(model),
        'toggles': toggles,
        'rows': [r.to_dict() for r in model.query.order_by(getattr(model, order_by)).all()],
    }


MODULE_CONTEXT = {
    'overview': _overview_context,
    'students': _students_context,
    'faculty': _faculty_context,
    'rooms': _rooms_context,
    'courses': _courses_context,
    'course-allocation': _allocation_context,
    'class-routine': _routine_context,
    'term-upgrade': _term_upgrade_context,
    'results': _results_context,
    'tv-display': _tv_context,
    'website-cms': _cms_context,
}


@app.route('/dashboard')
@roles_required('ADMIN', 'TEACHER')
def dashboard():
    module = request.args.get('module', 'overview')
    if module not in MODULE_CONTEXT:
        module = 'overview'
    if not _database_ready():
        return render_template('dashboard.html', title='Dashboard', modules=DASHBOARD_MODULES,
                               module=module, unconfigured=True), 503
    context = MODULE_CONTEXT[module]()
    return render_template('dashboard.html', title='Dashboard', modules=DASHBOARD_MODULES,
                           module=module, unconfigured=False, **context)


@app.route("/healthz")
def healthz():
    if not _database_ready():
        return jsonify({"status": "error", "message": "Database not configured"}), 503
    try:
        return jsonify({
            "status": "ok",
            "students": Student.query.count(),
            "teachers": Teacher.query.count(),
            "courses": Course.query.count(),
        }), 200
    except Exception as e:
        logger.exception("Health check failed")
        return jsonify({"status": "error", "message": str(e)}), 500


def _wants_json():
    return request.path.startswith('/api/')


@app.errorhandler(400)
def handle_400(error):
    if _wants_json():
        return jsonify({'success': False, 'error': 'Bad request'}), 400
    return render_template('error.html', title='Bad Request', code=400), 400


@app.errorhandler(404)
def handle_404(error):
    if _wants_json():
        return jsonify({'success': False, 'error': 'Not found'}), 404
    return render_template('error.html', title='Not Found', code=404), 404


@app.errorhandler(405)
def handle_405(error):
    if _wants_json():
        return jsonify({'success': False, 'error': 'Method not allowed'}), 405
    return render_template('error.html', title='Method Not Allowed', code=405), 405


@app.errorhandler(500)
def handle_500(error):
    logger.exception("Unhandled exception")
    db.session.rollback()
    if _wants_json():
        return jsonify({'success': False, 'error': 'Internal server error'}), 500
    return render_template('error.html', title='Server Error', code=500), 500
