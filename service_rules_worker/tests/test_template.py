"""
Unit tests for schema templates.
"""

import pytest

from service_rules_worker.app.schema.template import (
    Literal,
    Nested,
    Placeholder,
    SchemaInputs,
    instantiate_schema,
    parse_template,
    placeholder_name,
    render_schema,
)
from shared.errors import TemplateError


class TestRenderSchema:
    """Test cases for render_schema."""

    @pytest.fixture
    def inputs(self):
        """Create schema inputs."""
        return SchemaInputs()

    def test_render_key_and_value_placeholders(self, inputs):
        """Test placeholders in key and value positions."""
        template = {
            "type": inputs.P1,
            "properties": {
                "a": {},
                inputs.P2: {"type": "integer"}
            }
        }

        rendered = render_schema(template)

        assert rendered.schema == {
            "type": "Input(P1)",
            "properties": {
                "a": {},
                "Input(P2)": {"type": "integer"}
            }
        }
        assert dict(rendered.pointers) == {
            "/type": False,
            "/properties/Input(P2)": True
        }

    def test_render_without_placeholders(self):
        """Test a plain schema renders unchanged with no pointers."""
        template = {"type": "object", "required": ["a"]}

        rendered = render_schema(template)

        assert rendered.schema == template
        assert dict(rendered.pointers) == {}

    def test_render_does_not_alias_literals(self):
        """Test rendered literals are copies of the template values."""
        template = {"enum": ["a", "b"]}

        rendered = render_schema(template)
        rendered.schema["enum"].append("c")

        assert template["enum"] == ["a", "b"]

    def test_render_placeholder_in_array(self, inputs):
        """Test a placeholder inside an array gets an index pointer."""
        rendered = render_schema({"enum": ["fixed", inputs.choice]})

        assert rendered.schema == {"enum": ["fixed", "Input(choice)"]}
        assert dict(rendered.pointers) == {"/enum/1": False}

    def test_render_escapes_pointer_segments(self, inputs):
        """Test keys containing '/' and '~' are escaped in pointers."""
        rendered = render_schema({"a/b": {"c~d": inputs.x}})

        assert dict(rendered.pointers) == {"/a~1b/c~0d": False}

    def test_render_reused_placeholder(self, inputs):
        """Test the same placeholder may appear at several pointers."""
        rendered = render_schema({"minimum": inputs.n, "default": inputs.n})

        assert dict(rendered.pointers) == {"/minimum": False, "/default": False}

    def test_pointers_are_read_only(self, inputs):
        """Test the pointer map cannot be mutated."""
        rendered = render_schema({"type": inputs.t})

        with pytest.raises(TypeError):
            rendered.pointers["/other"] = True

    def test_render_root_must_be_object(self):
        """Test non-object roots are rejected."""
        with pytest.raises(TemplateError):
            render_schema(["a"])

        with pytest.raises(TemplateError):
            render_schema("string")

    def test_render_invalid_key(self):
        """Test non-string keys are rejected."""
        with pytest.raises(TemplateError) as exc_info:
            render_schema({1: "a"})

        assert exc_info.value.code == "SCHEMA_TEMPLATE_INVALID"

    def test_render_duplicate_rendered_key(self):
        """Test a placeholder key colliding with a literal key."""
        with pytest.raises(TemplateError):
            render_schema({"Input(x)": {}, Placeholder("x"): {}})

    def test_schema_inputs_item_access(self, inputs):
        """Test item access hands out placeholders too."""
        assert inputs["my-field"] == Placeholder("my-field")
        assert inputs.field.identifier == "Input(field)"

    def test_schema_inputs_dunder_lookup(self, inputs):
        """Test dunder lookups are not turned into placeholders."""
        with pytest.raises(AttributeError):
            inputs.__wrapped__


class TestParseTemplate:
    """Test cases for parse_template."""

    def test_parse_classifies_nodes(self):
        """Test the tree is classified into literal, placeholder and nested nodes."""
        node = parse_template({"a": 1, "b": Placeholder("p"), "c": [True]})

        assert isinstance(node, Nested)
        children = dict(node.children)
        assert children["a"] == Literal(1)
        assert children["b"] == Placeholder("p")
        assert children["c"] == Nested(((0, Literal(True)),), array=True)


class TestInstantiateSchema:
    """Test cases for instantiate_schema."""

    def test_instantiate_substitutes_values(self):
        """Test real values replace rendered placeholders."""
        inputs = SchemaInputs()
        rendered = render_schema({
            "type": "object",
            "properties": {inputs.field: {"const": inputs.value}},
            "required": [inputs.field]
        })

        schema = instantiate_schema(
            rendered.schema,
            rendered.pointers,
            {"field": "status", "value": 3}
        )

        assert schema == {
            "type": "object",
            "properties": {"status": {"const": 3}},
            "required": ["status"]
        }

    def test_instantiate_leaves_rendered_schema_untouched(self):
        """Test instantiation works on a copy."""
        rendered = render_schema({"type": Placeholder("t")})

        instantiate_schema(rendered.schema, rendered.pointers, {"t": "string"})

        assert rendered.schema == {"type": "Input(t)"}

    def test_instantiate_missing_value(self):
        """Test a missing input value is an error."""
        rendered = render_schema({"type": Placeholder("t")})

        with pytest.raises(TemplateError) as exc_info:
            instantiate_schema(rendered.schema, rendered.pointers, {})

        assert exc_info.value.details == {"input": "t"}

    def test_instantiate_key_collision(self):
        """Test a key input may not overwrite an existing sibling key."""
        rendered = render_schema({
            "properties": {"status": {"type": "string"}, Placeholder("field"): {}}
        })

        with pytest.raises(TemplateError) as exc_info:
            instantiate_schema(rendered.schema, rendered.pointers, {"field": "status"})

        assert exc_info.value.details["key"] == "status"

    def test_placeholder_name(self):
        """Test recovering a name from an identifier."""
        assert placeholder_name("Input(P1)") == "P1"

        with pytest.raises(TemplateError):
            placeholder_name("P1")
