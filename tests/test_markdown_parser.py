from pathlib import Path

from fal_node_gen.parser.base import OutputType, ParamType, RawParameter
from fal_node_gen.parser.markdown import (
    coerce_default,
    extract_endpoint,
    extract_model_name,
    find_section,
    infer_output_type,
    map_type,
    parse_markdown,
    parse_parameter_block,
    split_blocks,
)

FIXTURES = Path(__file__).parent / "fixtures"

SEED_BLOCK = (
    "- **`seed`** (`integer`, _optional_):\n"
    "Random seed.\n"
    "Default: `42`\n"
    "Range: `0` to `1000`"
)


def _block(text: str):
    return parse_parameter_block(text.splitlines())


def _schema(body: str) -> str:
    return f"# Test Model\n\n### Input Schema\n\n{body}\n"


class TestModelNameAndEndpoint:
    def test_title_becomes_model_name(self):
        assert extract_model_name("# FLUX.1 [dev]\n\nText") == "FLUX1_dev"

    def test_whitespace_runs_collapse(self):
        assert extract_model_name("#   Stable   Diffusion  XL  \n") == "Stable_Diffusion_XL"

    def test_only_level_one_heading_counts(self):
        assert extract_model_name("## Overview\n# Real Title\n") == "Real_Title"

    def test_heading_inside_code_fence_ignored(self):
        text = "```bash\n# a comment\n```\n# Model\n"
        assert extract_model_name(text) == "Model"

    def test_missing_title(self):
        assert extract_model_name("no heading here") == ""

    def test_model_id_preferred_over_endpoint(self):
        text = (
            "- **Endpoint**: `https://fal.run/foo/baz`\n"
            "- **Model ID**: `foo/bar`\n"
        )
        assert extract_endpoint(text) == "foo/bar"

    def test_endpoint_url_reduced_to_path(self):
        assert extract_endpoint("**Endpoint**: `https://fal.run/fal-ai/flux/dev`") == "fal-ai/flux/dev"

    def test_endpoint_without_fal_run_kept(self):
        assert extract_endpoint("**Endpoint**: `https://example.com/v1/gen`") == "https://example.com/v1/gen"

    def test_no_endpoint(self):
        assert extract_endpoint("# Title") == ""


class TestOutputType:
    def test_default_is_image(self):
        assert infer_output_type("# Image model") == OutputType.IMAGE

    def test_video_keyword(self):
        assert infer_output_type("Returns an MP4 file") == OutputType.VIDEO

    def test_audio_keyword(self):
        assert infer_output_type("Generates WAV output") == OutputType.AUDIO

    def test_video_checked_before_audio(self):
        assert infer_output_type("video with audio track") == OutputType.VIDEO


class TestSections:
    def test_section_body_until_same_level_heading(self):
        text = "### Input Schema\nA\n#### Nested\nB\n### Output Schema\nC\n"
        assert find_section(text) == ["A", "#### Nested", "B"]

    def test_section_runs_to_end_of_document(self):
        assert find_section("## input schema\nA\nB") == ["A", "B"]

    def test_higher_level_heading_ends_section(self):
        assert find_section("### Input Schema\nA\n## Usage\nB") == ["A"]

    def test_missing_section(self):
        assert find_section("# Title\n## Overview\n") is None

    def test_split_blocks_discards_preamble(self):
        lines = ["Intro text", "- **`a`** (`string`, _required_)", "desc", "- **`b`**", "more"]
        blocks = split_blocks(lines)
        assert blocks == [["- **`a`** (`string`, _required_)", "desc"], ["- **`b`**", "more"]]

    def test_indented_bullets_stay_in_parent_block(self):
        lines = ["- **`size`** (`object`, _optional_)", "  - **`width`** (`integer`, _optional_)"]
        assert len(split_blocks(lines)) == 1


class TestTypeMapping:
    def test_scalar_types(self):
        assert map_type("string") == ParamType.STRING
        assert map_type("Integer") == ParamType.INT
        assert map_type("float") == ParamType.FLOAT
        assert map_type("boolean") == ParamType.BOOLEAN

    def test_image_size_before_enum(self):
        assert map_type("ImageSize | Enum") == ParamType.COMPOSITE_SIZE

    def test_enum_and_union(self):
        assert map_type("OutputFormatEnum") == ParamType.ENUM
        assert map_type("string | null") == ParamType.ENUM

    def test_list_and_array(self):
        assert map_type("list<LoraWeight>") == ParamType.ARRAY
        assert map_type("Array") == ParamType.ARRAY

    def test_unknown_falls_back_to_string(self):
        assert map_type("File") == ParamType.STRING


class TestParameterBlock:
    def test_seed_block(self):
        param = _block(SEED_BLOCK)
        assert param.name == "seed"
        assert param.type == ParamType.INT
        assert param.required is False
        assert param.description == "Random seed."
        assert param.default == 42
        assert isinstance(param.default, int)
        assert param.min == 0
        assert param.max == 1000

    def test_block_without_name_dropped(self):
        assert parse_parameter_block(["- plain bullet"]) is None

    def test_name_made_identifier_safe(self):
        param = _block("- **`neg prompt`** (`string`, _optional_):\nWhat to avoid.")
        assert param.name == "neg_prompt"
        assert param.source_name == "neg prompt"
        assert param.description == "What to avoid."

    def test_leading_digit_prefixed(self):
        assert _block("- **`2nd-pass`** (`boolean`, _optional_):").name == "_2nd_pass"

    def test_unusable_name_dropped(self):
        assert _block("- **`---`** (`string`, _optional_):\nNothing.") is None

    def test_required_marker(self):
        param = _block("- **`prompt`** (`string`, _required_):\n  The prompt.")
        assert param.required is True
        assert param.type == ParamType.STRING

    def test_missing_type_clause_defaults(self):
        param = _block("- **`mystery`**\nSomething.")
        assert param.type == ParamType.STRING
        assert param.required is False
        assert param.description == "Something."

    def test_description_skips_attribute_lines(self):
        param = _block("- **`x`** (`integer`, _optional_):\n\nDefault: `3`\n- nested\nReal description\nSecond line")
        assert param.description == "Real description"

    def test_default_value_label(self):
        param = _block("- **`steps`** (`integer`, _optional_):\n  Steps. Default value: `28`")
        assert param.default == 28

    def test_boolean_default(self):
        assert _block("- **`a`** (`boolean`, _optional_):\nDefault: `true`").default is True
        assert _block("- **`b`** (`boolean`, _optional_):\nDefault: `false`").default is False

    def test_zero_int_default_kept(self):
        assert _block("- **`n`** (`integer`, _optional_):\nDefault: `0`").default == 0

    def test_malformed_number_default_becomes_none(self):
        param = _block("- **`n`** (`float`, _optional_):\nDefault: `abc`\nRange: `0` to `1`")
        assert param.default is None
        assert param.min == 0
        assert param.max == 1

    def test_float_default(self):
        assert _block("- **`g`** (`float`, _optional_):\nDefault: `3.5`").default == 3.5

    def test_range_ignored_for_non_numeric(self):
        param = _block("- **`s`** (`string`, _optional_):\nRange: `1` to `5`")
        assert param.min is None
        assert param.max is None

    def test_minimum_only(self):
        param = _block("- **`n`** (`integer`, _optional_):\nMinimum: `1`")
        assert param.min == 1
        assert param.max is None

    def test_options_force_enum(self):
        param = _block("- **`fmt`** (`string`, _optional_):\nOptions: `jpeg`, `png`")
        assert param.type == ParamType.ENUM
        assert param.enum == ["jpeg", "png"]

    def test_image_size_name_is_composite(self):
        param = _block("- **`image_size`** (`string`, _required_):\nSize.")
        assert param.composite is True
        assert param.type == ParamType.COMPOSITE_SIZE
        assert param.required is True


class TestCoerceDefault:
    def test_empty_string_literals(self):
        param = RawParameter(name="s")
        assert coerce_default(param, "") == ""
        assert coerce_default(param, '""') == ""

    def test_empty_list(self):
        assert coerce_default(RawParameter(name="l", type=ParamType.ARRAY), "[]") == []

    def test_object_literal(self):
        param = RawParameter(name="o", type=ParamType.OBJECT)
        assert coerce_default(param, '{"height":1024,"width":1024}') == {"height": 1024, "width": 1024}

    def test_broken_object_literal_kept_as_text(self):
        assert coerce_default(RawParameter(name="o"), "{not json}") == "{not json}"

    def test_other_text_kept(self):
        assert coerce_default(RawParameter(name="e", type=ParamType.ENUM), '"jpeg"') == '"jpeg"'


class TestParseMarkdown:
    def test_no_input_schema_section(self):
        schema = parse_markdown("# Model\n\nSome text about images.\n")
        assert schema.parameters == {}
        assert schema.output_type == OutputType.IMAGE

    def test_later_block_overwrites_earlier(self):
        schema = parse_markdown(_schema(
            "- **`a`** (`string`, _optional_):\nfirst\n"
            "- **`a`** (`integer`, _required_):\nsecond"
        ))
        assert list(schema.parameters) == ["a"]
        assert schema.parameters["a"].description == "second"

    def test_fixture_document(self):
        text = (FIXTURES / "flux-dev.md").read_text(encoding="utf-8")
        schema = parse_markdown(text)
        assert schema.model_name == "FLUX1_dev"
        assert schema.endpoint == "fal-ai/flux/dev"
        assert schema.output_type == OutputType.IMAGE
        assert list(schema.parameters)[:3] == ["prompt", "image_size", "num_inference_steps"]
        assert "images" not in schema.parameters
        assert schema.parameters["image_size"].composite is True
        assert schema.parameters["output_format"].enum == ['"jpeg"', '"png"']
        assert schema.parameters["loras"].default == []
        assert schema.parameters["guidance_scale"].max == 20

    def test_unusable_block_does_not_hide_others(self):
        schema = parse_markdown(_schema(
            "- **`?`** (`string`, _optional_):\nodd\n"
            "- **`guidance-scale`** (`float`, _optional_):\nscale\n"
            "- **`prompt`** (`string`, _required_):\nthe prompt"
        ))
        assert list(schema.parameters) == ["guidance_scale", "prompt"]
        assert schema.parameters["guidance_scale"].source_name == "guidance-scale"
        assert schema.parameters["prompt"].required is True
