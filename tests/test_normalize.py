from fal_node_gen.parser.base import OutputType, ParamType, RawParameter, RawSchema
from fal_node_gen.parser.normalize import (
    SIZE_DEFAULT,
    SIZE_MAX,
    SIZE_MIN,
    normalize,
    normalize_name,
    normalize_parameters,
)


def _composite(required: bool = False) -> RawParameter:
    return RawParameter(name="image_size", type=ParamType.COMPOSITE_SIZE, composite=True, required=required)


class TestCompositeExpansion:
    def test_replaced_in_place(self):
        result = normalize_parameters({
            "prompt": RawParameter(name="prompt", required=True),
            "image_size": _composite(),
            "seed": RawParameter(name="seed", type=ParamType.INT),
        })
        assert list(result) == ["prompt", "width", "height", "seed"]

    def test_synthesized_fields(self):
        result = normalize_parameters({"image_size": _composite()})
        for name in ("width", "height"):
            spec = result[name]
            assert spec.type == ParamType.INT
            assert spec.default == SIZE_DEFAULT
            assert spec.min == SIZE_MIN
            assert spec.max == SIZE_MAX
            assert spec.required is False
            assert spec.description

    def test_required_flag_inherited(self):
        result = normalize_parameters({"image_size": _composite(required=True)})
        assert result["width"].required is True
        assert result["height"].required is True

    def test_composite_never_survives(self):
        result = normalize_parameters({"image_size": _composite()})
        assert "image_size" not in result
        assert all(spec.type != ParamType.COMPOSITE_SIZE for spec in result.values())

    def test_declared_width_after_composite_wins(self):
        declared = RawParameter(name="width", type=ParamType.INT, default=512, description="Custom")
        result = normalize_parameters({"image_size": _composite(), "width": declared})
        assert result["width"].default == 512
        assert result["width"].description == "Custom"
        assert result["height"].default == SIZE_DEFAULT

    def test_declared_height_before_composite_wins(self):
        declared = RawParameter(name="height", type=ParamType.INT, default=768)
        result = normalize_parameters({"height": declared, "image_size": _composite()})
        assert list(result) == ["height", "width"]
        assert result["height"].default == 768


class TestNormalize:
    def test_plain_fields_copied(self):
        raw = RawParameter(name="fmt", type=ParamType.ENUM, enum=["a", "b"], default="a", description="Format")
        model = normalize(RawSchema(
            model_name="m",
            endpoint="fal-ai/m",
            output_type=OutputType.VIDEO,
            parameters={"fmt": raw},
        ))
        spec = model.parameters["fmt"]
        assert spec.enum == ("a", "b")
        assert spec.default == "a"
        assert spec.description == "Format"
        assert model.model_name == "m"
        assert model.endpoint == "fal-ai/m"
        assert model.output_type == OutputType.VIDEO

    def test_empty_schema(self):
        model = normalize(RawSchema())
        assert model.parameters == {}

    def test_bad_name_dropped_others_kept(self):
        result = normalize_parameters({
            "bad name": RawParameter(name="bad name"),
            "prompt": RawParameter(name="prompt", required=True),
        })
        assert list(result) == ["prompt"]

    def test_source_name_carried(self):
        raw = RawParameter(name="guidance_scale", source_name="guidance-scale", type=ParamType.FLOAT)
        model = normalize(RawSchema(parameters={"guidance_scale": raw}))
        assert model.parameters["guidance_scale"].source_name == "guidance-scale"


class TestNormalizeName:
    def test_already_safe(self):
        assert normalize_name("num_images") == "num_images"

    def test_unsafe_runs_collapse(self):
        assert normalize_name("guidance-scale") == "guidance_scale"
        assert normalize_name("neg  prompt") == "neg_prompt"
        assert normalize_name("a.b/c") == "a_b_c"

    def test_surrounding_whitespace_stripped(self):
        assert normalize_name("  seed ") == "seed"

    def test_leading_digit(self):
        assert normalize_name("1st") == "_1st"

    def test_nothing_left(self):
        assert normalize_name("") == ""
        assert normalize_name("---") == ""
        assert normalize_name("   ") == ""
        assert normalize_name("_") == ""
