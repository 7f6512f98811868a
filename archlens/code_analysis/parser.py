"""Structural extraction of imports, exports, functions, classes and components.

Extraction is a set of independent regex passes over the file text. It
tolerates syntax it does not understand, at the cost of over- or
under-counting constructs in unusual formatting or minified code.
"""

import re
from typing import List, Optional

from .models import (
    FileRecord,
    ImportRecord,
    ExportRecord,
    FunctionRecord,
    ClassRecord,
    MethodRecord,
    PropertyRecord,
    ComponentRecord,
    CodeAnalysisResult,
)
from .metrics import ComplexityCalculator, complexity_calculator
from .rules import IssueRules
from ..config import PolicyConfig
from ..constants import VIEW_EXTENSIONS
from ..exceptions import MissingContentError
from ..utils import line_number_at


STATIC_IMPORT_REGEX = re.compile(
    r'''^import\s+(?:type\s+)?(?:(\w+)(?:\s*,\s*)?)?(?:\{([^}]+)\})?\s*(?:\*\s*as\s+(\w+))?\s*from\s+['"`]([^'"`]+)['"`]''',
    re.MULTILINE,
)
SIDE_EFFECT_IMPORT_REGEX = re.compile(r'''^import\s+['"`]([^'"`]+)['"`]''', re.MULTILINE)
DYNAMIC_IMPORT_REGEX = re.compile(r'''import\s*\(\s*['"`]([^'"`]+)['"`]\s*\)''')
REQUIRE_REGEX = re.compile(
    r'''(?:const|let|var)\s+(?:\{([^}]+)\}|(\w+))\s*=\s*require\s*\(\s*['"`]([^'"`]+)['"`]\s*\)'''
)

NAMED_EXPORT_REGEX = re.compile(
    r'export\s+(?:(const|let|var|function|class|interface|type|enum)\s+(\w+)|\{([^}]+)\})'
)
DEFAULT_EXPORT_REGEX = re.compile(r'export\s+default\s+(?:(function|class)\s+(\w+)|(\w+))')

FUNCTION_REGEX = re.compile(
    r'(?:(export\s+)?(?:(async)\s+)?(function)\s+(\w+)\s*\(([^)]*)\)'
    r'|(export\s+)?const\s+(\w+)\s*=\s*(?:(async)\s+)?(?:\(([^)]*)\)|(\w+))\s*=>)'
)
CLASS_REGEX = re.compile(
    r'(export\s+)?(?:default\s+)?(abstract\s+)?class\s+(\w+)'
    r'(?:\s+extends\s+([\w.]+))?(?:\s+implements\s+([^{]+))?\s*\{'
)
METHOD_REGEX = re.compile(r'(?:(static)\s+)?(?:(async)\s+)?(\w+)\s*\([^)]*\)\s*\{')
PROPERTY_REGEX = re.compile(r'(?:(static)\s+)?(?:(private|protected|public)\s+)?(?:readonly\s+)?(\w+)\s*[:=]')

FUNCTION_COMPONENT_REGEX = re.compile(
    r'(?:(export\s+)(?:default\s+)?)?(?:const|let|var)\s+([A-Z]\w*)\s*(?::\s*[\w.<>]+\s*)?=\s*'
    r'(?:(?:React\.)?memo\(\s*)?(?:\([^)]*\)|\w+)\s*=>\s*[({]'
    r'|(?:(export\s+)(?:default\s+)?)?function\s+([A-Z]\w*)\s*\([^)]*\)\s*\{'
)
CLASS_COMPONENT_REGEX = re.compile(
    r'(?:(export\s+)(?:default\s+)?)?class\s+([A-Z]\w*)\s+extends\s+(?:React\.)?(?:Component|PureComponent)'
)
COMPONENT_NAME_REGEX = re.compile(r'^[A-Z][a-zA-Z0-9]*$')
PROPS_REGEX = re.compile(r'props\.(\w+)')
DESTRUCTURED_PROPS_REGEX = re.compile(r'^[^(]*\(\s*\{([^}]*)\}')
STATE_REGEX = re.compile(r'const\s+\[(\w+),\s*set\w+\]\s*=\s*(?:React\.)?useState')
EFFECT_REGEX = re.compile(r'useEffect\(')
CLASS_PROPS_REGEX = re.compile(r'this\.props\.(\w+)')
CLASS_STATE_REGEX = re.compile(r'this\.state\.(\w+)')

HOOKS = [
    'useState', 'useEffect', 'useContext', 'useReducer', 'useCallback',
    'useMemo', 'useRef', 'useImperativeHandle', 'useLayoutEffect',
    'useDebugValue', 'useDeferredValue', 'useTransition', 'useId',
    'useSyncExternalStore', 'useInsertionEffect',
]
LIFECYCLE_METHODS = ['componentDidMount', 'componentDidUpdate', 'componentWillUnmount']
RESERVED_METHOD_NAMES = {'if', 'for', 'while', 'switch', 'catch', 'function', 'return'}


def is_external(source: str) -> bool:
    return not source.startswith('.') and not source.startswith('/')


def split_names(raw: str) -> List[str]:
    return [part.strip() for part in raw.split(',') if part.strip()]


def count_parameters(raw: str) -> int:
    return len(split_names(raw)) if raw and raw.strip() else 0


def find_block_end(content: str, start: int, open_char: str = '{', close_char: str = '}') -> int:
    """Index just past the bracketed block that opens at or after ``start``."""
    depth = 0
    opened = False
    for i in range(start, len(content)):
        char = content[i]
        if char == open_char:
            depth += 1
            opened = True
        elif char == close_char and opened:
            depth -= 1
            if depth == 0:
                return i + 1
    return len(content)


def find_body_end(content: str, start: int) -> int:
    """End of a function body starting at ``start``.

    Braced and parenthesized bodies run to their closing bracket; an
    expression body runs to the end of its line.
    """
    i = start
    while i < len(content) and content[i] in ' \t':
        i += 1
    if i < len(content) and content[i] == '{':
        return find_block_end(content, i)
    if i < len(content) and content[i] == '(':
        return find_block_end(content, i, '(', ')')
    line_end = content.find('\n', i)
    return len(content) if line_end == -1 else line_end


class CodeParser:
    """Extract structure and metrics from one file's content."""

    def __init__(self, policy: Optional[PolicyConfig] = None,
                 calculator: Optional[ComplexityCalculator] = None):
        self.policy = policy or PolicyConfig()
        self.calculator = calculator or complexity_calculator
        self.rules = IssueRules(self.policy)

    def analyze(self, file: FileRecord) -> CodeAnalysisResult:
        """Parse a scanned file.

        Raises:
            MissingContentError: If the scanner did not capture content
        """
        if file.content is None:
            raise MissingContentError(file.relative_path)

        content = file.content
        result = CodeAnalysisResult(
            file=file,
            imports=self.parse_imports(content),
            exports=self.parse_exports(content),
            functions=self.parse_functions(content),
            classes=self.parse_classes(content),
            components=self.parse_components(content, file.extension),
            metrics=self.calculator.calculate_metrics(content),
        )
        result.issues = self.rules.detect(result)
        return result

    def parse_imports(self, content: str) -> List[ImportRecord]:
        imports = []

        for match in STATIC_IMPORT_REGEX.finditer(content):
            default, named, namespace, source = match.groups()
            record = ImportRecord(
                source=source,
                line=line_number_at(content, match.start()),
                is_default=bool(default),
                is_namespace=bool(namespace),
                is_external=is_external(source),
            )
            if default:
                record.specifiers.append(default)
            if named:
                record.specifiers.extend(split_names(named))
            if namespace:
                record.specifiers.append(namespace)
            imports.append(record)

        for match in SIDE_EFFECT_IMPORT_REGEX.finditer(content):
            source = match.group(1)
            imports.append(ImportRecord(
                source=source,
                line=line_number_at(content, match.start()),
                is_external=is_external(source),
            ))

        for match in DYNAMIC_IMPORT_REGEX.finditer(content):
            source = match.group(1)
            imports.append(ImportRecord(
                source=source,
                line=line_number_at(content, match.start()),
                is_dynamic=True,
                is_external=is_external(source),
            ))

        for match in REQUIRE_REGEX.finditer(content):
            destructured, variable, source = match.groups()
            record = ImportRecord(
                source=source,
                line=line_number_at(content, match.start()),
                is_default=bool(variable),
                is_external=is_external(source),
            )
            if variable:
                record.specifiers.append(variable)
            if destructured:
                record.specifiers.extend(split_names(destructured))
            imports.append(record)

        return imports

    def parse_exports(self, content: str) -> List[ExportRecord]:
        exports = []

        for match in NAMED_EXPORT_REGEX.finditer(content):
            kind, name, names = match.groups()
            line = line_number_at(content, match.start())
            if name:
                exports.append(ExportRecord(name=name, line=line, kind=kind or 'const'))
            if names:
                for exported in split_names(names):
                    # "a as b" exports the alias
                    exports.append(ExportRecord(name=exported.split(' as ')[-1].strip(), line=line))

        for match in DEFAULT_EXPORT_REGEX.finditer(content):
            kind, name, identifier = match.groups()
            exports.append(ExportRecord(
                name=name or identifier or 'default',
                line=line_number_at(content, match.start()),
                is_default=True,
                kind=kind or 'const',
            ))

        return exports

    def parse_functions(self, content: str) -> List[FunctionRecord]:
        functions = []

        for match in FUNCTION_REGEX.finditer(content):
            (exported1, async1, keyword, func_name, params1,
             exported2, const_name, async2, params2, arrow_param) = match.groups()
            name = func_name or const_name
            if not name:
                continue

            if keyword:
                end = find_block_end(content, match.end())
            else:
                end = find_body_end(content, match.end())
            body = content[match.start():end]
            functions.append(FunctionRecord(
                name=name,
                line_start=line_number_at(content, match.start()),
                line_end=line_number_at(content, end),
                parameter_count=count_parameters(params1 or params2 or arrow_param or ''),
                is_exported=bool(exported1 or exported2),
                is_async=bool(async1 or async2),
                is_arrow=not keyword,
                complexity=self.calculator.calculate_cyclomatic_complexity(body),
            ))

        return functions

    def parse_classes(self, content: str) -> List[ClassRecord]:
        classes = []

        for match in CLASS_REGEX.finditer(content):
            exported, abstract, name, superclass, interfaces = match.groups()
            end = find_block_end(content, match.start())
            body = content[match.start():end]
            # Skip the class header so it is not read as a method
            inner = body[body.index('{') + 1:] if '{' in body else ''
            line_offset = line_number_at(content, match.start() + len(body) - len(inner)) - 1

            classes.append(ClassRecord(
                name=name,
                line_start=line_number_at(content, match.start()),
                line_end=line_number_at(content, end),
                superclass=superclass,
                interfaces=split_names(interfaces) if interfaces else [],
                methods=self._parse_methods(inner, line_offset),
                properties=self._parse_properties(inner, line_offset),
                is_exported=bool(exported),
                is_abstract=bool(abstract),
            ))

        return classes

    def _parse_methods(self, body: str, line_offset: int) -> List[MethodRecord]:
        methods = []
        for match in METHOD_REGEX.finditer(body):
            is_static, is_async, name = match.groups()
            if name in RESERVED_METHOD_NAMES:
                continue
            methods.append(MethodRecord(
                name=name,
                line=line_offset + line_number_at(body, match.start()),
                is_static=bool(is_static),
                is_async=bool(is_async),
            ))
        return methods

    def _parse_properties(self, body: str, line_offset: int) -> List[PropertyRecord]:
        properties = []
        for match in PROPERTY_REGEX.finditer(body):
            is_static, visibility, name = match.groups()
            properties.append(PropertyRecord(
                name=name,
                line=line_offset + line_number_at(body, match.start()),
                is_static=bool(is_static),
                visibility=visibility or 'public',
            ))
        return properties

    def parse_components(self, content: str, extension: str) -> List[ComponentRecord]:
        """UI components, only for view-file extensions."""
        if extension not in VIEW_EXTENSIONS:
            return []

        components = []
        seen = set()

        for match in FUNCTION_COMPONENT_REGEX.finditer(content):
            _, name1, _, name2 = match.groups()
            name = name1 or name2
            if not name or not COMPONENT_NAME_REGEX.match(name) or name in seen:
                continue
            seen.add(name)

            end = find_body_end(content, match.end() - 1)
            body = content[match.start():end]
            components.append(ComponentRecord(
                name=name,
                line_start=line_number_at(content, match.start()),
                line_end=line_number_at(content, end),
                kind='function',
                props=self._extract_props(body),
                state=_unique(STATE_REGEX.findall(body)),
                hooks=[hook for hook in HOOKS if hook in body],
                effects=len(EFFECT_REGEX.findall(body)),
                is_memoized='memo(' in body or f'memo({name})' in content,
                complexity=self.calculator.calculate_cyclomatic_complexity(body),
            ))

        for match in CLASS_COMPONENT_REGEX.finditer(content):
            name = match.group(2)
            if name in seen:
                continue
            seen.add(name)

            end = find_block_end(content, match.start())
            body = content[match.start():end]
            components.append(ComponentRecord(
                name=name,
                line_start=line_number_at(content, match.start()),
                line_end=line_number_at(content, end),
                kind='class',
                props=_unique(CLASS_PROPS_REGEX.findall(body)),
                state=_unique(CLASS_STATE_REGEX.findall(body)),
                effects=sum(1 for method in LIFECYCLE_METHODS if method in body),
                is_memoized='PureComponent' in match.group(0),
                complexity=self.calculator.calculate_cyclomatic_complexity(body),
            ))

        return components

    def _extract_props(self, body: str) -> List[str]:
        props = list(PROPS_REGEX.findall(body))
        destructured = DESTRUCTURED_PROPS_REGEX.search(body.split('\n', 1)[0])
        if destructured:
            for item in split_names(destructured.group(1)):
                props.append(re.split(r'[=:\s]', item)[0])
        return _unique(p for p in props if p and p != '...')


def _unique(values) -> List[str]:
    result = []
    for value in values:
        if value not in result:
            result.append(value)
    return result
