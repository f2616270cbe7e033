from services.narrative.option_parser import parse_options


def _pairs(content):
    return [(o.id, o.text) for o in parse_options(content)]


class TestParseOptions:
    def test_numbered_list(self):
        content = "You stand at the door.\n\n1. Knock\n2) Kick it in\n* 3. Walk away\n- 4. Wait"
        assert _pairs(content) == [(1, "Knock"), (2, "Kick it in"), (3, "Walk away"), (4, "Wait")]

    def test_ids_outside_one_to_four_are_ignored(self):
        assert _pairs("0. Nope\n1. Yes\n2. Maybe\n5. Too many") == [(1, "Yes"), (2, "Maybe")]

    def test_lenient_pass_keeps_first_occurrence(self):
        content = "1: Run\n2 - Hide\n2 - Hide again\n3 Fight"
        assert _pairs(content) == [(1, "Run"), (2, "Hide"), (3, "Fight")]

    def test_results_sorted_by_id(self):
        assert _pairs("2. Second\n1. First") == [(1, "First"), (2, "Second")]

    def test_no_options(self):
        assert parse_options("The story ends here. Thanks for playing.") == []
        assert parse_options("") == []
