import unittest

from licitasis.pagination import ELLIPSIS, MAX_ITEMS_PER_PAGE, page_payload, paginate, visible_pages


class PaginateTest(unittest.TestCase):
    def test_meta_for_middle_page(self) -> None:
        meta = paginate(53, page=2, limit=25)
        self.assertEqual(meta["offset"], 25)
        self.assertEqual(meta["total_pages"], 3)
        self.assertEqual(meta["start_item"], 26)
        self.assertEqual(meta["end_item"], 50)
        self.assertTrue(meta["has_previous"])
        self.assertTrue(meta["has_next"])

    def test_empty_result_still_has_one_page(self) -> None:
        meta = paginate(0)
        self.assertEqual(meta["total_pages"], 1)
        self.assertEqual(meta["start_item"], 0)
        self.assertEqual(meta["end_item"], 0)
        self.assertFalse(meta["has_next"])

    def test_invalid_arguments_are_clamped(self) -> None:
        meta = paginate(10, page="x", limit="1000")
        self.assertEqual(meta["page"], 1)
        self.assertEqual(meta["limit"], MAX_ITEMS_PER_PAGE)
        self.assertEqual(paginate(10, page=-3, limit=0)["limit"], 1)


class VisiblePagesTest(unittest.TestCase):
    def test_single_page(self) -> None:
        self.assertEqual(visible_pages(1, 1), [1])

    def test_gaps_around_current_page(self) -> None:
        self.assertEqual(visible_pages(5, 10), [1, ELLIPSIS, 3, 4, 5, 6, 7, ELLIPSIS, 10])
        self.assertEqual(visible_pages(1, 10), [1, 2, 3, ELLIPSIS, 10])
        self.assertEqual(visible_pages(10, 10), [1, ELLIPSIS, 8, 9, 10])

    def test_page_payload_wraps_rows(self) -> None:
        payload = page_payload([{"id": 1}], paginate(1))
        self.assertEqual(payload["data"], [{"id": 1}])
        self.assertEqual(payload["total"], 1)
        self.assertEqual(payload["pages"], [1])


if __name__ == "__main__":
    unittest.main()
