# assessment/utils.py

import json
import logging
import re

import commentjson
import yaml
from json_repair import repair_json

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)

logger = logging.getLogger("maturity_backend")


class Utils():

    # -----------------------
    # General Utils
    # -----------------------

    def color_print(self, text, color=None, end_value=None):
        COLOR_CODES = {
            'black': '30', 'red': '31', 'green': '32', 'yellow': '33', 'blue': '34', 'magenta': '35',
            'cyan': '36', 'white': '37', 'bright_black': '90', 'bright_red': '91', 'bright_green': '92',
            'bright_yellow': '93', 'bright_blue': '94', 'bright_magenta': '95', 'bright_cyan': '96', 'bright_white': '97'
        }
        if color and color.lower() in COLOR_CODES:
            color_code = COLOR_CODES[color.lower()]
            start = f"\033[{color_code}m"
            end = "\033[0m"
            text = f"{start}{text}{end}"
        logger.info(str(text))
        return False

    def clean_triple_backticks(self, code) -> str:
        """
        Returns the body of the first fenced block when the text carries one,
        otherwise the text with any stray fence markers removed.
        """
        code = code or ""
        fenced = re.search(r'```[a-zA-Z0-9_-]*[ \t]*\n?(.*?)\n?```', code, flags=re.DOTALL)
        if fenced:
            return fenced.group(1).strip()
        return re.sub(r'```[a-zA-Z0-9_-]*\n?', '', code).strip()

    def _coerce_field_to_str(self, value) -> str:
        if value is None:
            return ""
        if isinstance(value, str):
            return value.strip()
        try:
            return json.dumps(value, indent=2)
        except TypeError:
            return str(value).strip()

    def unsafe_string_format(self, dest_string, print_unused_keys_report=True, **kwargs):
        """
        Formats a destination string by replacing placeholders with corresponding values from kwargs.

        It works differently from the standard "format" method: only the keys passed in kwargs are
        replaced, so literal braces in the template (JSON examples) are left untouched.
        """
        missing_keys = []

        def replacer(match):
            key = match.group(1)
            if key in kwargs:
                return str(kwargs[key])
            missing_keys.append(key)
            return match.group(0)

        pattern = re.compile(r'\{(\w+)\}')
        result = pattern.sub(replacer, dest_string)
        if missing_keys and print_unused_keys_report:
            logger.info(f"\033[93m\033[3mMissing keys within string-to-format in unsafe_string_format: {', '.join(missing_keys)}\033[0m")
        return result

    # -----------------------
    # JSON loading
    # -----------------------

    def load_json_strict(self, json_str):
        """
        JSON-with-comments load. Raises on any syntax error.
        """
        return commentjson.loads(json_str)

    def load_fault_tolerant_json(self, json_str):
        """
        Last-resort loaders for model output: json_repair first, then pyyaml on a
        sanitized copy. Returns the parsed object, or None when neither yields one.
        """
        def sanitize_json_string(input_str):
            def process_string_segment(match):
                content = match.group(1)
                # unescaped backslashes not part of escape sequences
                content = re.sub(r'(?<!\\)\\(?![bfnrtu"\\/])', r'\\\\', content)
                # literal newlines inside strings
                content = re.sub(r'(?<!\\)\n', r'\\n', content)
                return f'"{content}"'

            no_comments = re.sub(r'^\s*//.*?$|/\*.*?\*/', '', input_str, flags=re.MULTILINE | re.DOTALL)
            return re.sub(r'(?<!\\)"((?:[^"\\]|\\.)*?)"', process_string_segment, no_comments, flags=re.DOTALL)

        errors = []
        try:
            data = repair_json(json_str, return_objects=True)
            if isinstance(data, (dict, list)) and data:
                return data
        except Exception as e:
            errors.append(str(e))
        try:
            data = yaml.safe_load(sanitize_json_string(json_str))
            if isinstance(data, (dict, list)) and data:
                return data
        except yaml.YAMLError as e:
            errors.append(str(e))
        if errors:
            logger.debug("load_fault_tolerant_json: %s", "\n--\n".join(errors))
        return None
