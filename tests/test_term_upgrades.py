import unittest
import sys
import os

# Set environment to testing before importing app
os.environ['FLASK_ENV'] = 'testing'

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from werkzeug.security import generate_password_hash
from deptportal import app, db, terms
from deptportal.models import Profile, Student, TermUpgradeRequest, AuditLog


class TermHelperTests(unittest.TestCase):

    def test_term_order_and_labels(self):
        self.assertEqual(len(terms.TERM_ORDER), 8)
        self.assertEqual(terms.term_info('2-1')['label'], '2nd Year 1st Term')
        self.assertEqual(terms.term_info('4-2')['short_label'], 'Y4-T2')
        self.assertIsNone(terms.term_info('5-1'))

    def test_next_and_prev(self):
        self.assertEqual(terms.get_next_term('1-2'), '2-1')
        self.assertIsNone(terms.get_next_term('4-2'))
        self.assertEqual(terms.get_prev_term('2-1'), '1-2')
        self.assertIsNone(terms.get_prev_term('1-1'))
        self.assertIsNone(terms.get_next_term('bogus'))

    def test_is_valid_upgrade(self):
        self.assertTrue(terms.is_valid_upgrade('1-1', '1-2'))
        self.assertTrue(terms.is_valid_upgrade('1-1', '3-1'))
        self.assertFalse(terms.is_valid_upgrade('2-1', '2-1'))
        self.assertFalse(terms.is_valid_upgrade('2-1', '1-2'))
        self.assertFalse(terms.is_valid_upgrade('2-1', '5-1'))

    def test_shift_term(self):
        self.assertEqual(terms.shift_term('1-1', terms.UPGRADE), '1-2')
        self.assertEqual(terms.shift_term('1-2', terms.DOWNGRADE), '1-1')
        with self.assertRaises(ValueError):
            terms.shift_term('1-1', 'sideways')

    def test_term_from_course_code(self):
        self.assertEqual(terms.term_from_course_code('CSE 3201'), '3-2')
        self.assertEqual(terms.term_from_course_code('MATH1103'), '1-1')
        self.assertIsNone(terms.term_from_course_code('CSE'))


class TermUpgradeApiTests(unittest.TestCase):

    def setUp(self):
        self.app = app
        self.client = self.app.test_client()
        self.app_context = self.app.app_context()
        self.app_context.push()
        db.create_all()
        self.admin = Profile(email='admin@example.com', password_hash=generate_password_hash('x'), role='ADMIN')
        db.session.add(self.admin)
        self.student_id = self._student('2003001', 'rahim@example.com', '1-1')
        self.login_as('ADMIN', self.admin.user_id)

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.app_context.pop()

    def _student(self, roll, email, term):
        profile = Profile(email=email, password_hash=generate_password_hash(roll), role='STUDENT')
        db.session.add(profile)
        db.session.flush()
        db.session.add(Student(user_id=profile.user_id, roll_no=roll, full_name=f'Student {roll}', term=term, session='2020'))
        db.session.commit()
        return profile.user_id

    def login_as(self, role, user_id=None):
        with self.client.session_transaction() as sess:
            sess['logged_in'] = True
            sess['user'] = f'{role.lower()}@example.com'
            sess['role'] = role
            sess['user_id'] = user_id

    def submit(self, **overrides):
        payload = {'student_user_id': self.student_id, 'current_term': '1-1', 'requested_term': '1-2',
                   'reason': 'Passed all courses'}
        payload.update(overrides)
        return self.client.post('/api/term-upgrades', json=payload)

    def test_submit_request(self):
        response = self.submit()
        self.assertEqual(response.status_code, 201)
        data = response.get_json()['data']
        self.assertEqual(data['status'], 'pending')
        self.assertEqual(data['requested_term'], '1-2')

    def test_submit_validation(self):
        self.assertEqual(self.client.post('/api/term-upgrades', json={'student_user_id': self.student_id}).status_code, 400)
        self.assertEqual(self.submit(requested_term='9-9').status_code, 400)
        self.assertEqual(self.submit(current_term='1-2', requested_term='1-1').status_code, 400)
        self.assertEqual(self.submit(current_term='2-1', requested_term='2-2').status_code, 400)
        self.assertEqual(self.submit(student_user_id='ghost').status_code, 404)
        self.assertEqual(TermUpgradeRequest.query.count(), 0)

    def test_second_pending_request_returns_409(self):
        self.submit()
        response = self.submit(requested_term='2-1')
        self.assertEqual(response.status_code, 409)
        self.assertEqual(TermUpgradeRequest.query.count(), 1)

    def test_approve_updates_student_term_once(self):
        request_id = self.submit().get_json()['data']['id']
        response = self.client.patch('/api/term-upgrades', json={
            'id': request_id, 'status': 'approved', 'admin_remarks': 'OK'})
        self.assertEqual(response.status_code, 200)
        data = response.get_json()['data']
        self.assertEqual(data['status'], 'approved')
        self.assertEqual(data['admin_user_id'], self.admin.user_id)
        self.assertIsNotNone(data['reviewed_at'])
        self.assertEqual(data['students']['term'], '1-2')
        self.assertEqual(db.session.get(Student, self.student_id).term, '1-2')

        again = self.client.patch('/api/term-upgrades', json={'id': request_id, 'status': 'approved'})
        self.assertEqual(again.status_code, 400)
        self.assertEqual(db.session.get(Student, self.student_id).term, '1-2')
        self.assertEqual(AuditLog.query.filter_by(action='term_upgrade_approved').count(), 1)

    def test_reject_keeps_student_term(self):
        request_id = self.submit().get_json()['data']['id']
        response = self.client.patch('/api/term-upgrades', json={'id': request_id, 'status': 'rejected'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(db.session.get(Student, self.student_id).term, '1-1')
        self.assertEqual(self.client.patch('/api/term-upgrades', json={
            'id': request_id, 'status': 'approved'}).status_code, 400)
        # a new request may follow a rejection
        self.assertEqual(self.submit().status_code, 201)

    def test_review_validation(self):
        request_id = self.submit().get_json()['data']['id']
        self.assertEqual(self.client.patch('/api/term-upgrades', json={'id': request_id}).status_code, 400)
        self.assertEqual(self.client.patch('/api/term-upgrades', json={
            'id': request_id, 'status': 'pending'}).status_code, 400)
        self.assertEqual(self.client.patch('/api/term-upgrades', json={
            'id': 'missing', 'status': 'approved'}).status_code, 404)

    def test_invalid_admin_user_id_falls_back_to_session(self):
        request_id = self.submit().get_json()['data']['id']
        response = self.client.patch('/api/term-upgrades', json={
            'id': request_id, 'status': 'rejected', 'admin_user_id': 'not-a-uuid'})
        self.assertEqual(response.get_json()['data']['admin_user_id'], self.admin.user_id)

    def test_list_filters(self):
        other = self._student('2003002', 'karim@example.com', '2-1')
        first = self.submit().get_json()['data']['id']
        self.submit(student_user_id=other, current_term='2-1', requested_term='2-2')
        self.client.patch('/api/term-upgrades', json={'id': first, 'status': 'approved'})

        everything = self.client.get('/api/term-upgrades').get_json()
        self.assertEqual(len(everything), 2)
        self.assertIn('students', everything[0])
        pending = self.client.get('/api/term-upgrades?status=pending').get_json()
        self.assertEqual([r['student_user_id'] for r in pending], [other])
        mine = self.client.get(f'/api/term-upgrades?studentUserId={self.student_id}').get_json()
        self.assertEqual(len(mine), 1)
        self.assertEqual(self.client.get('/api/term-upgrades?status=done').status_code, 400)

    def test_delete_only_pending(self):
        request_id = self.submit().get_json()['data']['id']
        self.client.patch('/api/term-upgrades', json={'id': request_id, 'status': 'rejected'})
        self.assertEqual(self.client.delete(f'/api/term-upgrades?id={request_id}').status_code, 400)

        pending_id = self.submit().get_json()['data']['id']
        self.assertEqual(self.client.delete(f'/api/term-upgrades?id={pending_id}').status_code, 200)
        self.assertIsNone(db.session.get(TermUpgradeRequest, pending_id))
        self.assertEqual(self.client.delete('/api/term-upgrades?id=missing').status_code, 404)
        self.assertEqual(self.client.delete('/api/term-upgrades').status_code, 400)

    def test_student_can_only_request_for_self(self):
        other = self._student('2003002', 'karim@example.com', '2-1')
        self.login_as('STUDENT', self.student_id)
        self.assertEqual(self.submit().status_code, 201)
        response = self.submit(student_user_id=other, current_term='2-1', requested_term='2-2')
        self.assertEqual(response.status_code, 403)

    def test_student_sees_only_own_requests(self):
        other = self._student('2003002', 'karim@example.com', '2-1')
        self.submit()
        self.submit(student_user_id=other, current_term='2-1', requested_term='2-2')
        self.login_as('STUDENT', other)
        listed = self.client.get(f'/api/term-upgrades?studentUserId={self.student_id}').get_json()
        self.assertEqual([r['student_user_id'] for r in listed], [other])

    def test_student_cannot_review(self):
        request_id = self.submit().get_json()['data']['id']
        self.login_as('STUDENT', self.student_id)
        response = self.client.patch('/api/term-upgrades', json={'id': request_id, 'status': 'approved'})
        self.assertEqual(response.status_code, 403)


if __name__ == "__main__":
    unittest.main()
