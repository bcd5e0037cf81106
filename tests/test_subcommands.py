from flagsift import SubcommandCandidate, detect_subcommands, is_valid_subcommand_name


def _pairs(text: str) -> set[tuple[str, str]]:
    return {(c.name, c.description) for c in detect_subcommands(text)}


def test_column_layout():
    text = "run       Run a command\nbuild     Build a project"
    pairs = _pairs(text)
    assert ("run", "Run a command") in pairs
    assert ("build", "Build a project") in pairs
    # Adjacent rows also pair up with each other.
    assert ("run", "build     Build a project") in pairs


def test_result_is_sorted_and_unique():
    text = "zap  Zap it now\n\nadd  Add it now\n\nadd  Add it now\n"
    assert detect_subcommands(text) == [
        SubcommandCandidate(name="add", description="Add it now"),
        SubcommandCandidate(name="zap", description="Zap it now"),
    ]


def test_man_page_layout_with_indented_description():
    text = "       commit\n              Record changes\n"
    assert _pairs(text) == {("commit", "Record changes")}


def test_name_followed_by_description_line():
    assert _pairs("remote\nshow things\n") == {("remote", "show things")}


def test_option_lines_are_not_candidates():
    text = "  -v, --verbose  Enable verbose mode\n      more detail\n"
    assert _pairs(text) == set()


def test_description_starting_with_dash_is_rejected():
    assert _pairs("  push\n      --force\n") == set()


def test_two_word_line_is_not_a_candidate():
    assert _pairs("status  Show\n") == set()


def test_invalid_names_are_skipped():
    text = "Commands:\n  c++  compile C plus plus\nUsage: tool [OPTIONS] ARGS\n"
    assert _pairs(text) == set()


def test_valid_subcommand_names():
    assert is_valid_subcommand_name("run")
    assert is_valid_subcommand_name("sub-cmd")
    assert is_valid_subcommand_name("snake_case2")
    assert not is_valid_subcommand_name("-v")
    assert not is_valid_subcommand_name("")
    assert not is_valid_subcommand_name("héllo")
    assert not is_valid_subcommand_name("a.b")


def test_candidate_text_rendering():
    candidate = SubcommandCandidate(name="run", description="Run it")
    assert str(candidate) == "run" + " " * 22 + " (Run it)"


def test_crlf_line_endings():
    assert _pairs("clone\r\n   Clone it\r\n") == {("clone", "Clone it")}


def test_form_feed_does_not_split_lines():
    text = "page one\x0cpage two\x0cthree\n"
    assert _pairs(text) == {("page", "one page two three")}
