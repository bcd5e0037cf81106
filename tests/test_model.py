import json

import pytest

from flagsift import (
    Command,
    ModelFormatError,
    Option,
    OptionName,
    OptionNameVariant,
    command_from_payload,
    command_json_schema,
    command_to_payload,
    dumps_command,
    loads_command,
)


def _sample_command() -> Command:
    return Command(
        name="jsoncmd",
        description="Json command",
        usage="jsoncmd [OPTIONS]",
        options=(
            Option(
                names=(
                    OptionName(raw="--verbose", variant=OptionNameVariant.LONG),
                    OptionName(raw="-v", variant=OptionNameVariant.SHORT),
                ),
                argument="FILE",
                description="Enable verbose mode",
            ),
        ),
        subcommands=(Command(name="sub", description="Subcommand"),),
        version="1.0.0",
    )


def test_payload_uses_structured_names():
    payload = command_to_payload(_sample_command())
    assert payload["options"][0]["names"] == [
        {"raw": "--verbose", "type": "LONG"},
        {"raw": "-v", "type": "SHORT"},
    ]
    assert payload["subcommands"][0]["name"] == "sub"
    assert payload["version"] == "1.0.0"


def test_payload_legacy_names_are_bare_strings():
    payload = command_to_payload(_sample_command(), legacy_names=True)
    assert payload["options"][0]["names"] == ["--verbose", "-v"]


def test_empty_subcommands_and_version_are_omitted():
    payload = command_to_payload(Command(name="bare"))
    assert payload == {"name": "bare", "description": "", "usage": "", "options": []}


def test_json_text_loads_back():
    cmd = _sample_command()
    assert loads_command(dumps_command(cmd)) == cmd
    assert loads_command(dumps_command(cmd, legacy_names=True)) == cmd


def test_legacy_names_are_classified_on_load():
    document = {
        "name": "h2o",
        "description": "h2o",
        "usage": "h2o --command CMD",
        "options": [
            {"names": ["-verbose", "-", "--", "-x"], "argument": "", "description": "d"}
        ],
    }
    cmd = command_from_payload(payload=document)
    names = cmd.options[0].names
    assert [(n.raw, n.variant) for n in names] == [
        ("-", OptionNameVariant.SINGLEDASHALONE),
        ("--", OptionNameVariant.DOUBLEDASHALONE),
        ("-verbose", OptionNameVariant.OLD),
        ("-x", OptionNameVariant.SHORT),
    ]
    assert cmd.subcommands == ()
    assert cmd.version == ""


def test_loaded_names_are_put_in_canonical_order():
    document = {
        "name": "t",
        "description": "",
        "usage": "",
        "options": [
            {
                "names": ["-v", {"raw": "--verbose", "type": "LONG"}, "-v"],
                "argument": "",
                "description": "d",
            }
        ],
    }
    names = command_from_payload(payload=document).options[0].names
    assert [n.raw for n in names] == ["--verbose", "-v"]


def test_unclassifiable_legacy_name_fails_the_document():
    document = {
        "name": "bad",
        "description": "",
        "usage": "",
        "options": [{"names": ["verbose"], "argument": "", "description": "d"}],
    }
    with pytest.raises(ModelFormatError, match="invalid option name"):
        command_from_payload(payload=document)


def test_unknown_structured_type_fails():
    document = {
        "name": "bad",
        "description": "",
        "usage": "",
        "options": [
            {"names": [{"raw": "-v", "type": "TINY"}], "argument": "", "description": "d"}
        ],
    }
    with pytest.raises(ModelFormatError):
        command_from_payload(payload=document)


def test_nested_failure_propagates():
    document = {
        "name": "root",
        "description": "",
        "usage": "",
        "options": [],
        "subcommands": [
            {
                "name": "child",
                "description": "",
                "usage": "",
                "options": [{"names": [42], "argument": "", "description": "d"}],
            }
        ],
    }
    with pytest.raises(ModelFormatError):
        command_from_payload(payload=document)


@pytest.mark.parametrize(
    "payload",
    [
        [],
        {"name": "x", "description": "", "usage": ""},
        {"name": 1, "description": "", "usage": "", "options": []},
        {"name": "x", "description": "", "usage": "", "options": [], "version": 2},
        {"name": "x", "description": "", "usage": "", "options": [], "subcommands": {}},
    ],
)
def test_malformed_documents_fail(payload):
    with pytest.raises(ModelFormatError):
        command_from_payload(payload=payload)


def test_invalid_json_text_fails():
    with pytest.raises(ModelFormatError):
        loads_command("{not json")


def test_model_format_error_is_a_value_error():
    assert issubclass(ModelFormatError, ValueError)


def test_schema_describes_both_name_forms():
    schema = command_json_schema()
    assert schema["required"] == ["name", "description", "usage", "options"]
    name_forms = schema["$defs"]["optionName"]["oneOf"]
    assert name_forms[0]["type"] == "string"
    assert name_forms[1]["properties"]["type"]["enum"] == [
        "LONG",
        "SHORT",
        "OLD",
        "DOUBLEDASHALONE",
        "SINGLEDASHALONE",
    ]
    json.dumps(schema)
