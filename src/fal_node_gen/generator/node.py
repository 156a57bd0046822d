"""ComfyUI node generator: renders a parsed API model into node package files."""

import json
import keyword
import math
import re

from pydantic import BaseModel, Field

from fal_node_gen.config import DEFAULT_CATEGORY, DEFAULT_NODE_NAME, ApiKeyHandling
from fal_node_gen.errors import GenerationError
from fal_node_gen.parser.base import OutputType, ParameterSpec, ParamType, ParsedApiModel

SIZE_FIELDS = ("width", "height")
SIZE_FALLBACK = 1024

OUTPUT_NAMES = {
    OutputType.IMAGE: "image",
    OutputType.VIDEO: "video",
    OutputType.AUDIO: "audio",
}

BASE_REQUIREMENTS = ("fal-client", "torch", "numpy", "Pillow", "requests")
EXTRA_REQUIREMENTS = {
    OutputType.VIDEO: ("opencv-python",),
    OutputType.AUDIO: ("librosa", "soundfile"),
}

INDENT = " " * 4


class NodeConfig(BaseModel):
    """User choices for the generated node."""

    node_name: str = Field(default=DEFAULT_NODE_NAME, min_length=1)
    category: str = Field(default=DEFAULT_CATEGORY, min_length=1)
    api_key_handling: ApiKeyHandling = ApiKeyHandling.EMBEDDED


def to_pascal_case(text: str) -> str:
    parts = [p for p in re.split(r"[^A-Za-z0-9]+", text) if p]
    name = "".join(p[0].upper() + p[1:] for p in parts) or "FalNode"
    return f"Node{name}" if name[0].isdigit() else name


def to_snake_case(text: str) -> str:
    name = re.sub(r"[^a-zA-Z0-9]", "_", text).lower() or "fal_node"
    return f"node_{name}" if name[0].isdigit() else name


def select_fields(model: ParsedApiModel, names: tuple[str, ...] | list[str] | None = None, all_fields: bool = False) -> tuple[str, ...]:
    """Choose which parameters become node inputs, in schema order.

    Defaults to the required parameters when nothing is requested.
    """
    if all_fields:
        selected = list(model.parameters)
    elif names:
        unknown = [n for n in names if n not in model.parameters]
        if unknown:
            raise GenerationError(f"Unknown field(s): {', '.join(unknown)}")
        wanted = set(names)
        selected = [n for n in model.parameters if n in wanted]
    else:
        selected = model.required_fields

    if not selected:
        raise GenerationError("Please select at least one field.")
    return tuple(selected)


def render_field_input(spec: ParameterSpec) -> str:
    """Render the INPUT_TYPES tuple for one field as Python source."""
    options: dict[str, str] = {}

    if spec.type == ParamType.ENUM:
        values = [_unquote(str(v)) for v in spec.enum or []]
        default = spec.default
        if isinstance(default, (dict, list)):
            default = json.dumps(default)
        elif not default and values:
            default = values[0]
        default = _unquote(str(default or ""))
        options["default"] = _py_str(default)
        kind = json.dumps(values)
    elif spec.type in (ParamType.INT, ParamType.FLOAT):
        is_int = spec.type == ParamType.INT
        low = _numeric(spec.min)
        high = _numeric(spec.max)
        default = _numeric(spec.default)
        if default is None:
            default = low if low is not None else 1.0
        if low is None:
            low = min(1.0 if is_int else 0.0, default)
        if high is None:
            high = max(100.0 if is_int else 10.0, default)
        options["default"] = _py_number(default, is_int)
        options["min"] = _py_number(low, is_int)
        options["max"] = _py_number(high, is_int)
        kind = _py_str(spec.type.value)
    elif spec.type == ParamType.BOOLEAN:
        options["default"] = "True" if spec.default is True or spec.default == "true" else "False"
        kind = '"BOOLEAN"'
    elif spec.type == ParamType.ARRAY:
        default = json.dumps(spec.default) if isinstance(spec.default, list) else "[]"
        options["default"] = _py_str(default)
        options["multiline"] = "True"
        kind = '"STRING"'
    else:
        default = spec.default
        if isinstance(default, (dict, list)):
            default = json.dumps(default)
        options["default"] = _py_str("" if default is None else str(default))
        kind = '"STRING"'

    if spec.description:
        options["tooltip"] = _py_str(spec.description)

    rendered = ", ".join(f'"{key}": {value}' for key, value in options.items())
    return f"({kind}, {{{rendered}}})"


class NodeCodeGenerator:
    """Generates a ComfyUI custom node package for one Fal.ai model."""

    def __init__(self, model: ParsedApiModel, selected_fields: tuple[str, ...] | list[str], config: NodeConfig | None = None):
        self.model = model
        self.selected = tuple(selected_fields)
        self.config = config or NodeConfig()
        self._check_selection()

    @property
    def class_name(self) -> str:
        return to_pascal_case(self.config.node_name)

    @property
    def module_name(self) -> str:
        return to_snake_case(self.config.node_name)

    @property
    def output_name(self) -> str:
        return OUTPUT_NAMES.get(self.model.output_type, "output")

    def file_names(self) -> list[str]:
        names = [f"{self.module_name}.py", "__init__.py", "requirements.txt", "install.py", "README.md"]
        if self.config.api_key_handling == ApiKeyHandling.CONFIG:
            names.append("config.ini")
        return names

    def generate(self) -> dict[str, str]:
        """Render every file of the node package.

        Returns dict of {filename: content}.
        """
        files = {
            f"{self.module_name}.py": self._render_main(),
            "__init__.py": self._render_init(),
            "requirements.txt": self._render_requirements(),
            "install.py": self._render_installer(),
            "README.md": self._render_readme(),
        }
        if self.config.api_key_handling == ApiKeyHandling.CONFIG:
            files["config.ini"] = self._render_config()
        return files

    def _check_selection(self) -> None:
        if not self.selected:
            raise GenerationError("Please select at least one field.")
        for name in self.selected:
            if name not in self.model.parameters:
                raise GenerationError(f"Unknown field: {name}")
            reserved = name == "self" or (name == "api_key" and self.config.api_key_handling == ApiKeyHandling.INPUT)
            if not name.isidentifier() or keyword.iskeyword(name) or reserved:
                raise GenerationError(f"Field name '{name}' cannot be used as a node input")

    # -- main node file -------------------------------------------------------

    def _render_main(self) -> str:
        cls = self.class_name
        json_fields = tuple(
            self._payload_key(n) for n in self.selected
            if self.model.parameters[n].type in (ParamType.ARRAY, ParamType.OBJECT)
        )
        parts = [
            self._render_imports(),
            "",
            "",
            f"class {cls}:",
            f'{INDENT}"""ComfyUI node for {self._doc_text(self.config.node_name)} ({self._doc_text(self.model.endpoint)})."""',
            "",
            f"{INDENT}JSON_FIELDS = {json_fields!r}",
            "",
            self._render_input_types(),
            "",
            f"{INDENT}RETURN_TYPES = ({_py_str(self.model.output_type.value)},)",
            f"{INDENT}RETURN_NAMES = ({_py_str(self.output_name)},)",
            f'{INDENT}FUNCTION = "execute"',
            f"{INDENT}CATEGORY = {_py_str(self.config.category)}",
            f"{INDENT}OUTPUT_NODE = False",
            "",
            self._render_execute(),
            "",
            CLEAN_PAYLOAD_HELPER,
            "",
            IMAGE_HELPER,
        ]
        if self.model.output_type == OutputType.VIDEO:
            parts.extend(["", VIDEO_HELPER])
        if self.model.output_type == OutputType.AUDIO:
            parts.extend(["", AUDIO_HELPER])
        parts.extend([
            "",
            "",
            f"NODE_CLASS_MAPPINGS = {{{_py_str(cls)}: {cls}}}",
            f"NODE_DISPLAY_NAME_MAPPINGS = {{{_py_str(cls)}: {_py_str(self.config.node_name)}}}",
        ])
        return "\n".join(parts) + "\n"

    def _render_imports(self) -> str:
        lines = [
            f"# ComfyUI node for {self._comment_text(self.config.node_name)}",
            "# Generated by fal-node-gen",
            "",
        ]
        if self.config.api_key_handling == ApiKeyHandling.CONFIG:
            lines.append("import configparser")
        lines.extend([
            "import json",
            "import os",
            "import tempfile",
            "from io import BytesIO",
            "",
            "try:",
            "    import fal_client",
            "except ImportError:",
            '    raise ImportError("fal-client not installed. Please install with: pip install fal-client")',
            "",
            "import numpy as np",
            "import requests",
            "import torch",
            "from PIL import Image",
        ])
        if self.model.output_type == OutputType.VIDEO:
            lines.extend([
                "",
                "try:",
                "    import cv2",
                "except ImportError:",
                '    print("OpenCV not installed. Video processing will not work. Install with: pip install opencv-python")',
                "    cv2 = None",
            ])
        if self.model.output_type == OutputType.AUDIO:
            lines.extend([
                "",
                "try:",
                "    import librosa",
                "except ImportError:",
                '    print("librosa not installed. Audio processing will not work. Install with: pip install librosa soundfile")',
                "    librosa = None",
            ])
        return "\n".join(lines)

    def _render_input_types(self) -> str:
        required: list[str] = []
        optional: list[str] = []
        if self.config.api_key_handling == ApiKeyHandling.INPUT:
            required.append('"api_key": ("STRING", {"default": ""})')
        for name in self.selected:
            spec = self.model.parameters[name]
            entry = f"{_py_str(name)}: {render_field_input(spec)}"
            (required if spec.required else optional).append(entry)

        pad = INDENT * 4
        lines = [
            f"{INDENT}@classmethod",
            f"{INDENT}def INPUT_TYPES(cls):",
            f"{INDENT * 2}return {{",
            f'{INDENT * 3}"required": {{',
            *(f"{pad}{entry}," for entry in required),
            f"{INDENT * 3}}},",
            f'{INDENT * 3}"optional": {{',
            *(f"{pad}{entry}," for entry in optional),
            f"{INDENT * 3}}},",
            f"{INDENT * 2}}}",
        ]
        return "\n".join(lines)

    def _render_execute(self) -> str:
        params = ["self"]
        if self.config.api_key_handling == ApiKeyHandling.INPUT:
            params.append("api_key")
        params.extend(n for n in self.selected if self.model.parameters[n].required)
        params.extend(f"{n}=None" for n in self.selected if not self.model.parameters[n].required)

        body = INDENT * 3
        lines = [
            f"{INDENT}def execute({', '.join(params)}):",
            f"{INDENT * 2}try:",
            *(body + line for line in self._render_api_key_setup()),
            "",
            f"{body}payload = {{",
            *(f"{body}{INDENT}{item}," for item in self._render_payload_items()),
            f"{body}}}",
            f"{body}payload = self._clean_payload(payload)",
            "",
            f"{body}result = fal_client.run(",
            f"{body}{INDENT}{_py_str(self.model.endpoint)},",
            f"{body}{INDENT}arguments=payload,",
            f"{body})",
            "",
            *(body + line if line else "" for line in self._render_output_processing()),
            f"{INDENT * 2}except Exception as e:",
            f'{body}print(f"Error in {self.class_name}: {{e}}")',
            f"{body}raise",
        ]
        return "\n".join(lines)

    def _render_api_key_setup(self) -> list[str]:
        handling = self.config.api_key_handling
        if handling == ApiKeyHandling.INPUT:
            return [
                "if api_key:",
                f'{INDENT}os.environ["FAL_KEY"] = api_key',
            ]
        if handling == ApiKeyHandling.CONFIG:
            return [
                "config = configparser.ConfigParser()",
                'config_path = os.path.join(os.path.dirname(__file__), "config.ini")',
                "if os.path.exists(config_path):",
                f"{INDENT}config.read(config_path)",
                f'{INDENT}if config.has_option("fal", "api_key"):',
                f'{INDENT * 2}os.environ["FAL_KEY"] = config.get("fal", "api_key")',
            ]
        return ["# The API key is read from the FAL_KEY environment variable"]

    def _render_payload_items(self) -> list[str]:
        items = [f"{_py_str(self._payload_key(n))}: {n}" for n in self.selected if n not in SIZE_FIELDS]
        sides = [n for n in SIZE_FIELDS if n in self.selected]
        if sides:
            values = {n: (f"{n} or {SIZE_FALLBACK}" if n in sides else str(SIZE_FALLBACK)) for n in SIZE_FIELDS}
            items.append(f'"image_size": {{"width": {values["width"]}, "height": {values["height"]}}}')
        return items

    def _payload_key(self, name: str) -> str:
        """Payload key for a field: the documented name, before normalization."""
        return self.model.parameters[name].source_name or name

    def _render_output_processing(self) -> list[str]:
        output_type = self.model.output_type
        if output_type == OutputType.VIDEO:
            return [
                'if "video" in result:',
                f'{INDENT}return (self._process_video_output(result["video"]["url"]),)',
                'raise RuntimeError("No video found in API response")',
            ]
        if output_type == OutputType.AUDIO:
            return [
                'if "audio" in result:',
                f'{INDENT}return (self._process_audio_output(result["audio"]["url"]),)',
                'raise RuntimeError("No audio found in API response")',
            ]
        return [
            'if result.get("images"):',
            f'{INDENT}return (self._process_image_output(result["images"][0]["url"]),)',
            'if "image" in result:',
            f'{INDENT}return (self._process_image_output(result["image"]["url"]),)',
            'raise RuntimeError("No image found in API response")',
        ]

    # -- package files ----------------------------------------------------------

    def _render_init(self) -> str:
        return (
            f"from .{self.module_name} import NODE_CLASS_MAPPINGS, NODE_DISPLAY_NAME_MAPPINGS\n"
            "\n"
            '__all__ = ["NODE_CLASS_MAPPINGS", "NODE_DISPLAY_NAME_MAPPINGS"]\n'
        )

    def _render_requirements(self) -> str:
        packages = BASE_REQUIREMENTS + EXTRA_REQUIREMENTS.get(self.model.output_type, ())
        return "\n".join(packages) + "\n"

    def _render_config(self) -> str:
        return '''[fal]
# Replace your_api_key_here with your Fal.ai API key
api_key = your_api_key_here
'''

    def _render_installer(self) -> str:
        files = [f for f in self.file_names() if f != "install.py"]
        lines = [
            "#!/usr/bin/env python3",
            f'"""Installer for the {self._doc_text(self.config.node_name)} ComfyUI node."""',
            "",
            "import os",
            "import shutil",
            "import subprocess",
            "import sys",
            "",
            f"NODE_FOLDER = {_py_str(self.module_name)}",
            f"FILES = {json.dumps(files)}",
            "",
            INSTALLER_BODY,
        ]
        if self.config.api_key_handling == ApiKeyHandling.CONFIG:
            lines.append('    print("Remember to edit config.ini and add your Fal.ai API key.")')
        lines.extend([
            "    return True",
            "",
            "",
            'if __name__ == "__main__":',
            "    sys.exit(0 if install_node(sys.argv[1] if len(sys.argv) > 1 else None) else 1)",
        ])
        return "\n".join(lines) + "\n"

    def _render_readme(self) -> str:
        name = self.config.node_name
        config_step = (
            "Edit `config.ini` and add your Fal.ai API key"
            if self.config.api_key_handling == ApiKeyHandling.CONFIG
            else "Set up your API key (see below)"
        )
        file_lines = "\n".join(f"- `{f}`" for f in self.file_names())
        return f"""# {name} ComfyUI Node

ComfyUI custom node for the Fal.ai model `{self.model.endpoint}`.

## Installation

### Automatic

1. Extract the node package
2. Run `python install.py [path/to/ComfyUI]`
3. Restart ComfyUI

### Manual

1. Copy all files to `ComfyUI/custom_nodes/{self.module_name}/`
2. Install dependencies: `pip install -r requirements.txt`
3. {config_step}
4. Restart ComfyUI

## API Key Setup

{API_KEY_INSTRUCTIONS[self.config.api_key_handling]}

## Usage

Find "{name}" in the "{self.config.category}" category, connect its inputs and
send the {self.output_name} output to a save or preview node.

## Files

{file_lines}
"""

    @staticmethod
    def _doc_text(text: str) -> str:
        return text.replace("\\", "\\\\").replace('"', "'")

    @staticmethod
    def _comment_text(text: str) -> str:
        return " ".join(text.splitlines())


API_KEY_INSTRUCTIONS = {
    ApiKeyHandling.INPUT: 'The API key is a node input. Connect a text primitive holding your Fal.ai API key to "api_key".',
    ApiKeyHandling.CONFIG: "Edit `config.ini` in the node directory and replace `your_api_key_here` with your Fal.ai API key.",
    ApiKeyHandling.EMBEDDED: "Set the `FAL_KEY` environment variable to your Fal.ai API key before starting ComfyUI.",
}


CLEAN_PAYLOAD_HELPER = '''    def _clean_payload(self, payload):
        """Drop empty values, decode JSON inputs and strip stray quotes."""
        cleaned = {}
        for key, value in payload.items():
            if value is None or value == "":
                continue
            if key in self.JSON_FIELDS and isinstance(value, str):
                try:
                    value = json.loads(value)
                except ValueError:
                    print(f"Ignoring invalid JSON for {key}: {value}")
                    continue
            elif isinstance(value, str) and len(value) > 1 and value.startswith('"') and value.endswith('"'):
                value = value[1:-1]
            cleaned[key] = value
        return cleaned'''

IMAGE_HELPER = '''    def _process_image_output(self, image_url):
        """Convert an API image to a ComfyUI IMAGE tensor (1, H, W, C)."""
        response = requests.get(image_url, timeout=30)
        response.raise_for_status()
        image = Image.open(BytesIO(response.content))
        if image.mode != "RGB":
            image = image.convert("RGB")
        image_np = np.array(image).astype(np.float32) / 255.0
        return torch.from_numpy(image_np).unsqueeze(0)'''

VIDEO_HELPER = '''    def _process_video_output(self, video_url):
        """Convert an API video to a frame tensor (1, F, H, W, C)."""
        if cv2 is None:
            raise RuntimeError("opencv-python is required for video output")
        response = requests.get(video_url, timeout=60)
        response.raise_for_status()
        with tempfile.NamedTemporaryFile(delete=False, suffix=".mp4") as temp_file:
            temp_file.write(response.content)
            temp_path = temp_file.name
        try:
            cap = cv2.VideoCapture(temp_path)
            frames = []
            while True:
                ret, frame = cap.read()
                if not ret:
                    break
                frame_rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
                frames.append(frame_rgb.astype(np.float32) / 255.0)
            cap.release()
        finally:
            os.unlink(temp_path)
        if not frames:
            raise RuntimeError("No frames extracted from video")
        return torch.from_numpy(np.stack(frames)).unsqueeze(0)'''

AUDIO_HELPER = '''    def _process_audio_output(self, audio_url):
        """Convert API audio to a (channels, samples) tensor."""
        if librosa is None:
            raise RuntimeError("librosa is required for audio output")
        response = requests.get(audio_url, timeout=60)
        response.raise_for_status()
        with tempfile.NamedTemporaryFile(delete=False, suffix=".wav") as temp_file:
            temp_file.write(response.content)
            temp_path = temp_file.name
        try:
            audio_data, _sample_rate = librosa.load(temp_path, sr=None, mono=False)
        finally:
            os.unlink(temp_path)
        if audio_data.ndim == 1:
            audio_data = audio_data[np.newaxis, :]
        return torch.from_numpy(audio_data)'''

INSTALLER_BODY = '''CANDIDATE_DIRS = [
    os.path.expanduser("~/ComfyUI"),
    os.path.expanduser("~/Desktop/ComfyUI"),
    os.path.expanduser("~/Documents/ComfyUI"),
    "./ComfyUI",
    "../ComfyUI",
]


def find_comfyui_directory():
    """Return the first candidate directory that contains ComfyUI's main.py."""
    for path in CANDIDATE_DIRS:
        if os.path.exists(os.path.join(path, "main.py")):
            return path
    return None


def install_node(comfyui_dir=None):
    comfyui_dir = comfyui_dir or find_comfyui_directory()
    if not comfyui_dir:
        comfyui_dir = input("ComfyUI not found. Enter the ComfyUI directory: ").strip()
    if not os.path.exists(os.path.join(comfyui_dir, "main.py")):
        print(f"Invalid ComfyUI directory: {comfyui_dir}")
        return False

    node_dir = os.path.join(comfyui_dir, "custom_nodes", NODE_FOLDER)
    os.makedirs(node_dir, exist_ok=True)

    current_dir = os.path.dirname(os.path.abspath(__file__))
    for name in FILES:
        src = os.path.join(current_dir, name)
        if os.path.exists(src):
            shutil.copy2(src, os.path.join(node_dir, name))
            print(f"Copied {name}")

    requirements = os.path.join(node_dir, "requirements.txt")
    try:
        subprocess.check_call([sys.executable, "-m", "pip", "install", "-r", requirements])
    except subprocess.CalledProcessError:
        print(f"Failed to install dependencies. Run manually: pip install -r {requirements}")

    print(f"Node installed to {node_dir}. Restart ComfyUI to load it.")'''


def _py_str(value: str) -> str:
    return json.dumps(value)


def _py_number(value: float, as_int: bool) -> str:
    if as_int:
        return str(int(value))
    return repr(float(value))


def _numeric(value: object) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value) if math.isfinite(value) else None


def _unquote(value: str) -> str:
    if len(value) > 1 and value.startswith('"') and value.endswith('"'):
        return value[1:-1]
    return value
