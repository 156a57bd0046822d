"""Checks generated node package files before they are written out."""

import ast
import configparser

# Attributes ComfyUI reads from every registered node class.
NODE_ATTRIBUTES = ("INPUT_TYPES", "RETURN_TYPES", "FUNCTION", "CATEGORY")


def validate_python(files: dict[str, str]) -> dict[str, str]:
    """Check Python files for syntax errors.

    Returns dict of {filename: error_message} for files with errors.
    """
    errors = {}
    for filename, content in files.items():
        if not filename.endswith(".py") or not content.strip():
            continue
        try:
            ast.parse(content, filename=filename)
        except SyntaxError as e:
            errors[filename] = f"SyntaxError: {e.msg} (line {e.lineno})"
    return errors


def validate_ini(files: dict[str, str]) -> dict[str, str]:
    """Check INI files (the node's config.ini) for format errors."""
    errors = {}
    for filename, content in files.items():
        if not filename.endswith(".ini"):
            continue
        parser = configparser.ConfigParser()
        try:
            parser.read_string(content, source=filename)
        except configparser.Error as e:
            errors[filename] = f"{type(e).__name__}: {e}"
    return errors


def validate_node_classes(files: dict[str, str]) -> dict[str, str]:
    """Check that classes listed in NODE_CLASS_MAPPINGS look like ComfyUI nodes.

    Files that do not parse or do not register nodes are skipped.
    """
    errors = {}
    for filename, content in files.items():
        if not filename.endswith(".py"):
            continue
        try:
            tree = ast.parse(content, filename=filename)
        except SyntaxError:
            continue

        classes = {node.name: node for node in tree.body if isinstance(node, ast.ClassDef)}
        for class_name in _registered_classes(tree):
            cls = classes.get(class_name)
            if cls is None:
                errors[filename] = f"NODE_CLASS_MAPPINGS references undefined class {class_name}"
                break
            missing = [attr for attr in NODE_ATTRIBUTES if attr not in _class_members(cls)]
            if missing:
                errors[filename] = f"{class_name} is missing {', '.join(missing)}"
                break
    return errors


def validate_files(files: dict[str, str]) -> dict[str, str]:
    """Run all validations on generated files.

    Returns dict of {filename: error_message} for all files with errors.
    """
    errors = {}
    errors.update(validate_node_classes(files))
    errors.update(validate_python(files))
    errors.update(validate_ini(files))
    return errors


def _registered_classes(tree: ast.Module) -> list[str]:
    for node in tree.body:
        if not isinstance(node, ast.Assign) or not isinstance(node.value, ast.Dict):
            continue
        if any(isinstance(t, ast.Name) and t.id == "NODE_CLASS_MAPPINGS" for t in node.targets):
            return [v.id for v in node.value.values if isinstance(v, ast.Name)]
    return []


def _class_members(cls: ast.ClassDef) -> set[str]:
    names = set()
    for stmt in cls.body:
        if isinstance(stmt, ast.Assign):
            names.update(t.id for t in stmt.targets if isinstance(t, ast.Name))
        elif isinstance(stmt, ast.FunctionDef):
            names.add(stmt.name)
    return names
