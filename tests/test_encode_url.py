import unittest

from redmine_api_client import encode_url


class TestEncodeUrl(unittest.TestCase):
    """Query string folding for GET requests."""

    def test_empty_params_return_path_unchanged(self):
        self.assertEqual(encode_url("/issues.json", {}), "/issues.json")
        self.assertEqual(encode_url("/issues.json", None), "/issues.json")
        self.assertEqual(encode_url("/issues.json"), "/issues.json")

    def test_leading_slash_is_added(self):
        self.assertEqual(encode_url("issues.json"), "/issues.json")
        self.assertEqual(encode_url("issues.json", {"limit": 5}), "/issues.json?limit=5")

    def test_params_keep_insertion_order(self):
        url = encode_url("/issues.json", {"project_id": 1, "status_id": "open", "limit": 25})
        self.assertEqual(url, "/issues.json?project_id=1&status_id=open&limit=25")

        url = encode_url("/issues.json", {"limit": 25, "project_id": 1})
        self.assertEqual(url, "/issues.json?limit=25&project_id=1")

    def test_keys_and_values_are_percent_encoded(self):
        url = encode_url("/issues.json", {"subject": "a b&c=d", "f[]": "status_id"})
        self.assertEqual(url, "/issues.json?subject=a%20b%26c%3Dd&f%5B%5D=status_id")

    def test_list_values_repeat_the_key(self):
        url = encode_url("/issues.json", {"issue_id": [1, 2, 3]})
        self.assertEqual(url, "/issues.json?issue_id=1&issue_id=2&issue_id=3")

    def test_nested_mappings_use_brackets(self):
        url = encode_url(
            "/issues.json",
            {"f": ["status_id"], "op": {"status_id": "o"}, "v": {"status_id": [1, 2]}},
        )
        self.assertEqual(
            url,
            "/issues.json?f=status_id&op%5Bstatus_id%5D=o"
            "&v%5Bstatus_id%5D=1&v%5Bstatus_id%5D=2",
        )

    def test_nested_mapping_keeps_values(self):
        self.assertEqual(
            encode_url("/issues.json", {"a": {"b": 1, "c": 2}}),
            "/issues.json?a%5Bb%5D=1&a%5Bc%5D=2",
        )

    def test_none_and_booleans(self):
        url = encode_url("/issues.json", {"assigned_to_id": None, "closed": True})
        self.assertEqual(url, "/issues.json?assigned_to_id=&closed=true")


if __name__ == "__main__":
    unittest.main()
