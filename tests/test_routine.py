import unittest
import sys
import os

# Set environment to testing before importing app
os.environ['FLASK_ENV'] = 'testing'

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from werkzeug.security import generate_password_hash
from deptportal import app, db, routine
from deptportal.models import Profile, Teacher, Course, CourseOffering, Room, RoutineSlot


def _raw_slot(slot_id, code, teacher, uid, day=0, start='08:00', end='08:50', room='302', section='A'):
    return {
        'id': slot_id,
        'day_of_week': day,
        'start_time': start,
        'end_time': end,
        'section': section,
        'course_offerings': {
            'term': '3-2',
            'session': '2020',
            'courses': {'code': code, 'title': code, 'credit': 3, 'course_type': 'Theory'},
            'teachers': {'full_name': teacher, 'teacher_uid': uid},
        },
        'rooms': {'room_number': room, 'room_type': 'classroom'},
    }


class RoutineHelperTests(unittest.TestCase):

    def test_normalize_time(self):
        self.assertEqual(routine.normalize_time('9:05'), '09:05')
        self.assertEqual(routine.normalize_time('14:30:00'), '14:30')
        with self.assertRaises(ValueError):
            routine.normalize_time('25:00')
        with self.assertRaises(ValueError):
            routine.normalize_time('noon')

    def test_times_overlap_is_half_open(self):
        self.assertTrue(routine.times_overlap('08:00', '08:50', '08:30', '09:20'))
        self.assertFalse(routine.times_overlap('08:00', '08:50', '08:50', '09:40'))

    def test_teacher_initials(self):
        self.assertEqual(routine.get_teacher_initials('Dr. Wahid Ibn Sufian'), 'WIS')
        self.assertEqual(routine.get_teacher_initials('Prof.Md Ali'), 'MA')
        self.assertEqual(routine.get_teacher_initials(''), '??')
        teachers = [{'full_name': 'Alice Rahman'}, {'full_name': 'Bob Karim'}]
        self.assertEqual(routine.format_combined_teacher_initials(teachers), 'AR & BK')
        self.assertEqual(routine.format_combined_teacher_names(teachers), 'Alice Rahman, Bob Karim')
        self.assertEqual(routine.format_combined_teacher_names([]), 'Unknown')

    def test_group_merges_combined_slots(self):
        slots = [
            _raw_slot('s1', 'CSE 3202', 'Alice Rahman', 'AR', start='14:30', end='17:00'),
            _raw_slot('s2', 'CSE 3202', 'Bob Karim', 'BK', start='14:30', end='17:00'),
            _raw_slot('s3', 'CSE 3201', 'Alice Rahman', 'AR'),
        ]
        display = routine.group_slots_for_display(slots)
        self.assertEqual(len(display), 2)
        lab = display[0]
        self.assertTrue(lab['is_combined'])
        self.assertEqual(lab['slot_ids'], ['s1', 's2'])
        self.assertEqual(lab['teacher_initials'], 'AR & BK')
        self.assertFalse(display[1]['is_combined'])

    def test_group_keeps_sections_apart(self):
        slots = [
            _raw_slot('s1', 'CSE 3201', 'Alice Rahman', 'AR', section='A'),
            _raw_slot('s2', 'CSE 3201', 'Alice Rahman', 'AR', section='B', room='303'),
        ]
        self.assertEqual(len(routine.group_slots_for_display(slots)), 2)

    def test_slot_span(self):
        lab = {'start_time': '14:30', 'end_time': '17:00'}
        self.assertEqual(routine.get_slot_span(lab), 3)
        self.assertEqual(routine.get_slot_span({'start_time': '08:00', 'end_time': '08:50'}), 1)

    def test_build_grid_marks_covered_periods(self):
        display = routine.group_slots_for_display([
            _raw_slot('s1', 'CSE 3202', 'Alice Rahman', 'AR', day=1, start='14:30', end='17:00'),
        ])
        grid = routine.build_routine_grid(display)
        self.assertEqual(len(grid), 5)
        monday = grid[1]['cells']
        self.assertEqual(monday[6]['span'], 3)
        self.assertEqual(monday[6]['slots'][0]['course_code'], 'CSE 3202')
        self.assertTrue(monday[7]['covered'])
        self.assertTrue(monday[8]['covered'])
        self.assertEqual(grid[0]['cells'][0]['slots'], [])


class RoutineApiTests(unittest.TestCase):

    def setUp(self):
        self.app = app
        self.client = self.app.test_client()
        self.app_context = self.app.app_context()
        self.app_context.push()
        db.create_all()
        with self.client.session_transaction() as sess:
            sess['logged_in'] = True
            sess['user'] = 'admin@example.com'
            sess['role'] = 'ADMIN'

        self.alice = self._teacher('Alice Rahman', 'AR')
        self.bob = self._teacher('Bob Karim', 'BK')
        self.os = Course(code='CSE 3201', title='Operating Systems', credit=3)
        self.lab = Course(code='CSE 3202', title='Operating Systems Lab', credit=1.5, course_type='Lab')
        self.spl = Course(code='CSE 1101', title='Structured Programming', credit=3)
        db.session.add_all([self.os, self.lab, self.spl])
        db.session.add(Room(room_number='302', room_type='classroom'))
        db.session.add(Room(room_number='Lab-1', room_type='lab'))
        db.session.commit()
        self.os_alice = self._offering(self.os, self.alice)
        self.lab_alice = self._offering(self.lab, self.alice)
        self.lab_bob = self._offering(self.lab, self.bob)
        self.spl_bob = self._offering(self.spl, self.bob)

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.app_context.pop()

    def _teacher(self, name, uid):
        profile = Profile(email=f'{uid.lower()}@example.com', password_hash=generate_password_hash('x'), role='TEACHER')
        db.session.add(profile)
        db.session.flush()
        teacher = Teacher(user_id=profile.user_id, teacher_uid=uid, full_name=name)
        db.session.add(teacher)
        db.session.commit()
        return teacher

    def _offering(self, course, teacher):
        offering = CourseOffering(course_id=course.id, teacher_user_id=teacher.user_id)
        db.session.add(offering)
        db.session.commit()
        return offering.id

    def _slot(self, offering_id, **overrides):
        payload = {'offering_id': offering_id, 'room_number': '302', 'day_of_week': 0,
                   'start_time': '08:00', 'end_time': '08:50', 'section': 'A'}
        payload.update(overrides)
        return self.client.post('/api/routine-slots', json=payload)

    def test_create_slot(self):
        response = self._slot(self.os_alice, start_time='8:00')
        self.assertEqual(response.status_code, 201)
        data = response.get_json()['data']
        self.assertEqual(data['start_time'], '08:00')
        self.assertEqual(data['course_offerings']['courses']['code'], 'CSE 3201')
        self.assertEqual(data['rooms']['room_number'], '302')

    def test_missing_fields_return_400(self):
        response = self.client.post('/api/routine-slots', json={'offering_id': self.os_alice})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self._slot(self.os_alice, day_of_week=9).status_code, 400)
        self.assertEqual(self._slot(self.os_alice, start_time='09:00', end_time='08:00').status_code, 400)
        self.assertEqual(self._slot(self.os_alice, room_number='999').status_code, 404)
        self.assertEqual(self._slot('missing').status_code, 404)

    def test_room_conflict_with_different_course_returns_409(self):
        self._slot(self.os_alice)
        response = self._slot(self.spl_bob, start_time='08:30', end_time='09:20')
        self.assertEqual(response.status_code, 409)
        self.assertEqual(RoutineSlot.query.count(), 1)

    def test_adjacent_slot_is_not_a_conflict(self):
        self._slot(self.os_alice)
        self.assertEqual(self._slot(self.spl_bob, start_time='08:50', end_time='09:40').status_code, 201)

    def test_same_course_in_same_room_is_combined(self):
        self._slot(self.lab_alice, room_number='Lab-1', start_time='14:30', end_time='17:00')
        response = self._slot(self.lab_bob, room_number='Lab-1', start_time='14:30', end_time='17:00')
        self.assertEqual(response.status_code, 201)

        grid = self.client.get('/api/routine-slots/grid').get_json()
        self.assertEqual(len(grid['slots']), 1)
        self.assertTrue(grid['slots'][0]['is_combined'])
        self.assertEqual(grid['slots'][0]['teacher_initials'], 'AR & BK')

    def test_combined_offering_ids(self):
        response = self.client.post('/api/routine-slots', json={
            'offering_ids': [self.lab_alice, self.lab_bob], 'room_number': 'Lab-1', 'day_of_week': 2,
            'start_time': '14:30', 'end_time': '17:00'})
        self.assertEqual(response.status_code, 201)
        self.assertEqual(len(response.get_json()['data']), 2)

        mixed = self.client.post('/api/routine-slots', json={
            'offering_ids': [self.lab_alice, self.spl_bob], 'room_number': '302', 'day_of_week': 3,
            'start_time': '08:00', 'end_time': '08:50'})
        self.assertEqual(mixed.status_code, 400)

    def test_list_filters_by_term_from_course_code(self):
        self._slot(self.os_alice)
        self._slot(self.spl_bob, day_of_week=1)
        third_year = self.client.get('/api/routine-slots?term=3-2').get_json()
        self.assertEqual(len(third_year), 1)
        self.assertEqual(third_year[0]['course_offerings']['courses']['code'], 'CSE 3201')
        self.assertEqual(len(self.client.get('/api/routine-slots?section=B').get_json()), 0)
        self.assertEqual(len(self.client.get('/api/routine-slots').get_json()), 2)

    def test_list_is_ordered_by_day_and_time(self):
        self._slot(self.spl_bob, day_of_week=1, start_time='10:40', end_time='11:30')
        self._slot(self.os_alice, day_of_week=1, start_time='08:00', end_time='08:50')
        self._slot(self.os_alice, day_of_week=0, start_time='09:40', end_time='10:30')
        slots = self.client.get('/api/routine-slots').get_json()
        self.assertEqual([(s['day_of_week'], s['start_time']) for s in slots],
                         [(0, '09:40'), (1, '08:00'), (1, '10:40')])

    def test_patch_rechecks_conflicts(self):
        self._slot(self.os_alice)
        slot_id = self._slot(self.spl_bob, start_time='09:40', end_time='10:30').get_json()['data']['id']
        response = self.client.patch('/api/routine-slots', json={'id': slot_id, 'start_time': '08:00', 'end_time': '08:50'})
        self.assertEqual(response.status_code, 409)
        response = self.client.patch('/api/routine-slots', json={'id': slot_id, 'room_number': 'Lab-1',
                                                                 'start_time': '08:00', 'end_time': '08:50'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['data']['room_number'], 'Lab-1')

    def test_patch_own_time_is_not_a_conflict(self):
        slot_id = self._slot(self.os_alice).get_json()['data']['id']
        response = self.client.patch('/api/routine-slots', json={'id': slot_id, 'end_time': '09:40'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['data']['end_time'], '09:40')

    def test_patch_missing_slot_returns_404(self):
        response = self.client.patch('/api/routine-slots', json={'id': 'nope', 'start_time': '08:00'})
        self.assertEqual(response.status_code, 404)

    def test_delete_combined_slot_by_comma_ids(self):
        a = self._slot(self.lab_alice, room_number='Lab-1').get_json()['data']['id']
        b = self._slot(self.lab_bob, room_number='Lab-1').get_json()['data']['id']
        response = self.client.delete(f'/api/routine-slots?id={a},{b}')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['deleted'], 2)
        self.assertEqual(RoutineSlot.query.count(), 0)
        self.assertEqual(self.client.delete('/api/routine-slots').status_code, 400)
        self.assertEqual(self.client.delete(f'/api/routine-slots?id={a}').status_code, 404)

    def test_teachers_can_read_routine(self):
        self._slot(self.os_alice)
        with self.client.session_transaction() as sess:
            sess['role'] = 'TEACHER'
        self.assertEqual(self.client.get('/api/routine-slots').status_code, 200)
        self.assertEqual(self._slot(self.spl_bob, day_of_week=4).status_code, 403)


if __name__ == "__main__":
    unittest.main()
