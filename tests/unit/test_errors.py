import unittest

from crowdsync.errors import (
    CREATION_RULES,
    ErrorOutcome,
    ErrorRule,
    ExistsResponseError,
    RemoteApiError,
    StorageNotReadyError,
    WaitResponseError,
    classify_error,
    error_for,
    message_contains,
    storage_rules,
)


class TestErrorClassification(unittest.TestCase):
    def test_directory_already_exists(self):
        self.assertEqual(classify_error(400, "Name must be unique", CREATION_RULES), ErrorOutcome.ALREADY_EXISTS)
        self.assertEqual(
            classify_error(409, "This file is currently being updated", CREATION_RULES),
            ErrorOutcome.ALREADY_EXISTS,
        )

    def test_concurrent_directory_creation(self):
        self.assertEqual(
            classify_error(400, "Already creating directory 'folder'", CREATION_RULES), ErrorOutcome.WAIT)

    def test_unclassified_errors(self):
        self.assertIsNone(classify_error(500, "Internal error", CREATION_RULES))
        self.assertIsNone(classify_error(400, "", CREATION_RULES))
        self.assertIsNone(classify_error(400, "Name must be unique", []))

    def test_storage_rule_is_bound_to_storage_id(self):
        rules = storage_rules(12)
        self.assertEqual(
            classify_error(400, "File from storage with id #12 was not found", rules),
            ErrorOutcome.STORAGE_NOT_READY,
        )
        self.assertIsNone(classify_error(400, "File from storage with id #13 was not found", rules))

    def test_first_matching_rule_wins(self):
        rules = [
            ErrorRule(ErrorOutcome.WAIT, message_contains("busy")),
            ErrorRule(ErrorOutcome.ALREADY_EXISTS, message_contains("busy", "exists")),
        ]
        self.assertEqual(classify_error(400, "busy and exists", rules), ErrorOutcome.WAIT)

    def test_rules_can_inspect_status_code(self):
        rules = [ErrorRule(ErrorOutcome.WAIT, lambda code, _message: code == 429)]
        self.assertEqual(classify_error(429, "slow down", rules), ErrorOutcome.WAIT)
        self.assertIsNone(classify_error(400, "slow down", rules))


class TestErrorFor(unittest.TestCase):
    def test_maps_outcomes_to_exception_types(self):
        self.assertIsInstance(error_for(400, "Name must be unique", CREATION_RULES), ExistsResponseError)
        self.assertIsInstance(error_for(400, "Already creating directory", CREATION_RULES), WaitResponseError)
        self.assertIsInstance(
            error_for(400, "File from storage with id #1 was not found", storage_rules(1)), StorageNotReadyError)

    def test_unclassified_error_keeps_status_and_message(self):
        error = error_for(403, "Permission denied", CREATION_RULES)
        self.assertIs(type(error), RemoteApiError)
        self.assertEqual(error.status_code, 403)
        self.assertEqual(error.message, "Permission denied")
        self.assertIn("403", str(error))


if __name__ == '__main__':
    unittest.main()
