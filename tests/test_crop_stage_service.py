from __future__ import annotations

import unittest
from datetime import date

from farmvault.services.crop_stage_service import (
    current_stage,
    generate_stage_timeline,
    get_crop_stages,
    normalize_crop_type,
)


class CropStageServiceTests(unittest.TestCase):
    def test_timeline_windows_are_inclusive_and_consecutive(self) -> None:
        timeline = generate_stage_timeline('french-beans', date(2024, 3, 1))
        self.assertEqual(timeline[0].name, 'Planting')
        self.assertEqual(timeline[0].start_date, date(2024, 3, 1))
        self.assertEqual(timeline[0].end_date, date(2024, 3, 7))
        self.assertEqual(timeline[1].start_date, date(2024, 3, 8))
        for previous, following in zip(timeline, timeline[1:]):
            self.assertEqual((following.start_date - previous.end_date).days, 1)

    def test_starting_stage_skips_earlier_stages(self) -> None:
        timeline = generate_stage_timeline('tomatoes', date(2024, 1, 1), starting_stage_index=1)
        self.assertEqual(timeline[0].index, 1)
        self.assertEqual(timeline[0].name, 'Transplanting')
        self.assertEqual(timeline[0].start_date, date(2024, 1, 1))
        self.assertEqual(len(timeline), len(get_crop_stages('tomatoes')) - 1)

    def test_starting_stage_out_of_range_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            generate_stage_timeline('maize', date(2024, 1, 1), starting_stage_index=99)

    def test_current_stage_before_during_and_after(self) -> None:
        timeline = generate_stage_timeline('french-beans', date(2024, 3, 1))
        self.assertIsNone(current_stage(timeline, date(2024, 2, 28)))
        self.assertEqual(current_stage(timeline, date(2024, 3, 7)).name, 'Planting')
        self.assertEqual(current_stage(timeline, date(2024, 3, 8)).name, 'Germination')
        self.assertEqual(current_stage(timeline, date(2025, 1, 1)).name, 'Harvesting')
        self.assertIsNone(current_stage([], date(2024, 3, 1)))

    def test_crop_type_is_normalized(self) -> None:
        self.assertEqual(normalize_crop_type(' French Beans '), 'french-beans')
        self.assertEqual(normalize_crop_type('FRENCH_BEANS'), 'french-beans')
        with self.assertRaises(ValueError):
            normalize_crop_type('coffee')


if __name__ == '__main__':
    unittest.main()
