import unittest

from peca_ai.domain.budget_status import (
    STATUS_ANSWERED,
    STATUS_COMPLETED,
    STATUS_PENDING,
    compute_request_status,
    normalize_shop_ids,
)


class ComputeRequestStatusTest(unittest.TestCase):
    def test_no_responses_is_pending(self) -> None:
        self.assertEqual(compute_request_status(0, 3), STATUS_PENDING)
        self.assertEqual(compute_request_status(0, 0), STATUS_PENDING)

    def test_partial_responses_are_answered(self) -> None:
        self.assertEqual(compute_request_status(1, 2), STATUS_ANSWERED)
        self.assertEqual(compute_request_status(2, 5), STATUS_ANSWERED)

    def test_all_selected_responded_is_completed(self) -> None:
        self.assertEqual(compute_request_status(2, 2), STATUS_COMPLETED)
        self.assertEqual(compute_request_status(1, 1), STATUS_COMPLETED)

    def test_more_responses_than_selected_stays_completed(self) -> None:
        self.assertEqual(compute_request_status(3, 2), STATUS_COMPLETED)

    def test_empty_selection_with_response_is_completed(self) -> None:
        self.assertEqual(compute_request_status(1, 0), STATUS_COMPLETED)

    def test_status_is_monotonic_as_responses_arrive(self) -> None:
        order = {STATUS_PENDING: 0, STATUS_ANSWERED: 1, STATUS_COMPLETED: 2}
        for selected in range(0, 5):
            ranks = [order[compute_request_status(count, selected)] for count in range(0, 7)]
            self.assertEqual(ranks, sorted(ranks), f"selected={selected}")


class NormalizeShopIdsTest(unittest.TestCase):
    def test_keeps_order_and_drops_duplicates_and_garbage(self) -> None:
        self.assertEqual(normalize_shop_ids(["3", 1, 3, "x", None, 0, -2, 2]), [3, 1, 2])

    def test_none_is_empty(self) -> None:
        self.assertEqual(normalize_shop_ids(None), [])


if __name__ == "__main__":
    unittest.main()
