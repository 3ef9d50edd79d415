import unittest

from termwise.core.errors import PercentageOutOfRange
from termwise.core.grades import classify, grade_point, grade_rank, grade_scale_problems, resolve_grade
from termwise.core.models import GradeBand, GradeScale, Standing

from fakes import sample_config, sample_scale


class ResolveGradeTests(unittest.TestCase):
    def setUp(self):
        self.scale = sample_scale()

    def test_grade_bands(self):
        self.assertEqual(resolve_grade(self.scale, 95), "A")
        self.assertEqual(resolve_grade(self.scale, 80), "A")
        self.assertEqual(resolve_grade(self.scale, 79.99), "B")
        self.assertEqual(resolve_grade(self.scale, 62), "C")
        self.assertEqual(resolve_grade(self.scale, 0), "F")
        self.assertEqual(resolve_grade(self.scale, 100), "A")

    def test_band_order_does_not_matter(self):
        shuffled = GradeScale("shuffled", "Shuffled", tuple(reversed(self.scale.bands)))
        self.assertEqual(resolve_grade(shuffled, 72), "B")

    def test_higher_percentage_never_gets_a_worse_grade(self):
        previous_rank = None
        for step in range(0, 201):
            percentage = step / 2
            rank = grade_rank(self.scale, resolve_grade(self.scale, percentage))
            if previous_rank is not None:
                self.assertLessEqual(rank, previous_rank)
            previous_rank = rank

    def test_out_of_range(self):
        with self.assertRaises(PercentageOutOfRange) as ctx:
            resolve_grade(self.scale, 100.5)
        self.assertEqual(ctx.exception.percentage, 100.5)

        with self.assertRaises(PercentageOutOfRange):
            resolve_grade(self.scale, -1)

    def test_grade_point(self):
        self.assertEqual(grade_point(self.scale, 72), 3.0)
        self.assertEqual(grade_point(self.scale, 12), 0.0)

    def test_unknown_label_rank(self):
        with self.assertRaises(ValueError):
            grade_rank(self.scale, "Z")


class GradeScaleProblemTests(unittest.TestCase):
    def test_valid_scale(self):
        self.assertEqual(grade_scale_problems(sample_scale()), ())

    def test_empty_scale(self):
        self.assertEqual(len(grade_scale_problems(GradeScale("empty", "Empty", ()))), 1)

    def test_duplicate_bounds(self):
        scale = GradeScale("dup", "Dup", (GradeBand("A", 50), GradeBand("B", 50), GradeBand("F", 0)))
        problems = grade_scale_problems(scale)
        self.assertEqual(len(problems), 1)
        self.assertIn("overlapping", problems[0])

    def test_bound_outside_range(self):
        scale = GradeScale("wide", "Wide", (GradeBand("A+", 120), GradeBand("F", 0)))
        self.assertEqual(len(grade_scale_problems(scale)), 1)

    def test_repeated_label(self):
        scale = GradeScale("labels", "Labels", (GradeBand("P", 50), GradeBand("P", 0)))
        self.assertEqual(len(grade_scale_problems(scale)), 1)

    def test_scale_not_starting_at_zero(self):
        scale = GradeScale("gap", "Gap", (GradeBand("A", 80), GradeBand("D", 40)))
        self.assertEqual(len(grade_scale_problems(scale)), 1)


class ClassifyTests(unittest.TestCase):
    def test_standing(self):
        config = sample_config()
        self.assertIs(classify(config, 85), Standing.HONOR)
        self.assertIs(classify(config, 80), Standing.HONOR)
        self.assertIs(classify(config, 79.9), Standing.PASS)
        self.assertIs(classify(config, 50), Standing.PASS)
        self.assertIs(classify(config, 49.99), Standing.FAIL)

    def test_out_of_range(self):
        with self.assertRaises(PercentageOutOfRange):
            classify(sample_config(), 101)


if __name__ == "__main__":
    unittest.main()
