import unittest
import sys
import os

# Set environment to testing before importing app
os.environ['FLASK_ENV'] = 'testing'

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from deptportal import csv_import


class CsvImportTests(unittest.TestCase):

    def test_parse_term_forms(self):
        self.assertEqual(csv_import.parse_term('1-1'), '1-1')
        self.assertEqual(csv_import.parse_term('2/1'), '2-1')
        self.assertEqual(csv_import.parse_term('32'), '3-2')
        self.assertEqual(csv_import.parse_term(' 4 - 2 '), '4-2')
        self.assertIsNone(csv_import.parse_term('5-1'))
        self.assertIsNone(csv_import.parse_term(''))

    def test_parse_session(self):
        self.assertEqual(csv_import.parse_session('2024'), '2024')
        self.assertEqual(csv_import.parse_session('24'), '2024')
        self.assertEqual(csv_import.parse_session("'24"), '2024')
        self.assertEqual(csv_import.parse_session('2023-24'), '2023-24')

    def test_parse_designation(self):
        self.assertEqual(csv_import.parse_designation('Professor'), 'PROFESSOR')
        self.assertEqual(csv_import.parse_designation('Assistant Prof'), 'ASSISTANT_PROFESSOR')
        self.assertEqual(csv_import.parse_designation('assoc-prof'), 'ASSOCIATE_PROFESSOR')
        self.assertIsNone(csv_import.parse_designation('Dean'))

    def test_student_csv(self):
        text = (
            "Name,Email,Mobile,Student ID,Term,Batch\n"
            "Rahim Uddin,RAHIM@example.com,01700000000,2003001,1-1,20\n"
            "\n"
            ",missing@example.com,,2003002,1-1,20\n"
            "Karim,karim@example.com,,2003003,9-9,20\n"
        )
        rows, errors = csv_import.parse_student_csv(text)
        self.assertEqual(rows, [{
            'full_name': 'Rahim Uddin',
            'email': 'rahim@example.com',
            'phone': '01700000000',
            'roll_no': '2003001',
            'term': '1-1',
            'session': '2020',
        }])
        self.assertEqual(len(errors), 2)
        self.assertTrue(errors[0].startswith('Row 3'))
        self.assertIn('Invalid term "9-9"', errors[1])

    def test_student_csv_missing_columns(self):
        rows, errors = csv_import.parse_student_csv("Name,Email\nA,a@example.com\n")
        self.assertEqual(rows, [])
        self.assertIn('Roll', errors[0])
        rows, errors = csv_import.parse_student_csv("Name,Email,Roll\nA,a@example.com,1\n")
        self.assertIn('Term', errors[0])
        rows, errors = csv_import.parse_student_csv("Name,Email,Roll,Term,Session\n")
        self.assertIn('at least one data row', errors[0])

    def test_student_csv_row_limit(self):
        lines = ["Name,Email,Roll,Term,Session"]
        lines += [f"S{i},s{i}@example.com,{i},1-1,2024" for i in range(5)]
        rows, errors = csv_import.parse_student_csv("\n".join(lines), max_rows=3)
        self.assertEqual(len(rows), 3)
        self.assertIn('only first 3', errors[0])

    def test_faculty_csv_defaults_designation(self):
        text = "Full Name,Email,Phone,Designation\nAlice,alice@example.com,,Dean\nBob,bob@example.com,,\n"
        rows, errors = csv_import.parse_faculty_csv(text)
        self.assertEqual([r['designation'] for r in rows], ['LECTURER', 'LECTURER'])
        self.assertEqual(len(errors), 1)
        self.assertIn('Dean', errors[0])

    def test_quoted_fields(self):
        text = 'Name,Email,Designation\n"Rahman, Alice",alice@example.com,Professor\n'
        rows, _errors = csv_import.parse_faculty_csv(text)
        self.assertEqual(rows[0]['full_name'], 'Rahman, Alice')


if __name__ == "__main__":
    unittest.main()
