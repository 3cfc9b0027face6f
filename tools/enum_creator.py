#!/usr/bin/env python3
"""
enum_creator.py - Enumerations for the protocol generator

Turns an <Enum> element into a C typedef and into Markdown tables. Each
<Value> may declare its number as decimal, hex (0x) or binary (0b); values
that are not numbers (typically other enumerators or macros) are carried as
a symbolic base, and the implicit values that follow are written as offsets
from it ("FOO + 1").

Usage:
    from enum_creator import EnumCreator

    enum = EnumCreator(element)
    enum.get_output()        # C declaration
    enum.number_list         # ['0', '2', '3']
    enum.min_bit_width       # 2
"""

import math
import re
from typing import Iterable, List, Optional
from xml.etree.ElementTree import Element

from schema_helpers import get_comment, output_long_comment, spaced_string

_DECIMAL = re.compile(r'[0-9]+')
_HEXADECIMAL = re.compile(r'0x([0-9a-fA-F]+)')
_BINARY = re.compile(r'0b([01]+)')


def parse_unsigned(text: str) -> Optional[int]:
    """Parse an unsigned integer with a 0x / 0b prefix selecting the radix."""
    match = _HEXADECIMAL.fullmatch(text)
    if match:
        return int(match.group(1), 16)

    match = _BINARY.fullmatch(text)
    if match:
        return int(match.group(1), 2)

    if _DECIMAL.fullmatch(text):
        return int(text)
    return None


class EnumCreator:
    """One enumeration: names, declared values, comments and resolved numbers."""

    def __init__(self, element: Optional[Element] = None):
        self.clear()
        if element is not None:
            self.parse(element)

    def clear(self) -> None:
        self.min_bit_width = 0
        self.name = ''
        self.comment = ''
        self.output = ''
        self.name_list: List[str] = []
        self.comment_list: List[str] = []
        self.value_list: List[str] = []
        self.number_list: List[str] = []

    def parse(self, element: Element) -> str:
        """Parse an <Enum> element and return the C text declaring it."""
        self.clear()

        self.name = element.get('name', '')
        self.comment = get_comment(element)

        values = element.findall('Value')
        if not values:
            self.compute_number_list()
            return self.output

        if self.comment:
            self.output += "/*!\n"
            self.output += output_long_comment(" *", self.comment) + "\n"
            self.output += " */\n"

        declarations = []
        max_length = 0
        for value_element in values:
            value_name = value_element.get('name', '')
            if not value_name:
                continue

            value = value_element.get('value', '')
            self.name_list.append(value_name)
            self.value_list.append(value)
            self.comment_list.append(get_comment(value_element))

            declaration = "    " + value_name
            if value:
                declaration += " = " + value
            declarations.append(declaration)
            max_length = max(max_length, len(declaration))

        self.compute_number_list()

        # One character for the separator, then pad to the next multiple of 4
        max_length += 1
        max_length += 4 - (max_length % 4)

        self.output += "typedef enum\n"
        self.output += "{\n"
        for index, declaration in enumerate(declarations):
            separator = "," if index < len(declarations) - 1 else " "
            self.output += declaration + separator
            self.output += " " * (max_length - len(declaration))
            self.output += "//!< " + self.comment_list[index] + "\n"
        self.output += "}" + self.name + ";\n"

        return self.output

    def compute_number_list(self) -> None:
        """
        Resolve the number of every enumerator, in declaration order, and
        the minimum bit width that can hold the largest resolved value.
        """
        self.number_list = []
        max_value = 0
        value = -1
        base_string = ''

        for declared in self.value_list:
            text = declared.strip()

            if not text:
                value += 1
                if base_string:
                    text = f"{base_string} + {value}"
                else:
                    text = str(value)
                    max_value = max(max_value, value)
            else:
                parsed = parse_unsigned(text)
                if parsed is None:
                    # Only the compiler can resolve this, track offsets from it
                    base_string = text
                    value = 0
                else:
                    base_string = ''
                    value = parsed
                    text = str(value)
                    max_value = max(max_value, value)

            self.number_list.append(text)

        if max_value > 0:
            self.min_bit_width = math.ceil(math.log2(max_value + 1))
        else:
            self.min_bit_width = 8

    def get_output(self) -> str:
        return self.output

    def get_bullet_markdown(self, indent: str = '') -> str:
        """Bulleted list documentation, the older form of get_markdown."""
        output = indent + "* `" + self.name + "`"
        if self.comment:
            output += " :  " + self.comment + "."
        output += "\n\n"

        indent += "    "
        for name, number, comment in zip(self.name_list, self.number_list, self.comment_list):
            output += indent + "* `" + name + " = " + number + "`"
            if comment:
                output += " :  " + comment + "."
            output += "\n\n"

        return output

    def get_markdown(self, outline: str = '', packet_ids: Iterable[str] = ()) -> str:
        """
        Markdown table documenting this enumeration. Enumerators that are
        also packet identifiers link to the packet's anchor.
        """
        if not self.name_list:
            return ''

        packet_ids = set(packet_ids)
        code_names = []
        for name in self.name_list:
            if name in packet_ids:
                code_names.append("[`" + name + "`](#" + name + ")")
            else:
                code_names.append("`" + name + "`")

        first = max([len("Name")] + [len(text) for text in code_names])
        second = max([len("Value")] + [len(text) for text in self.number_list])
        third = max([len("Description")] + [len(text) for text in self.comment_list])

        output = ''
        if outline:
            output += "## " + outline + ") " + self.name + "\n\n"

        if self.comment:
            output += "[" + self.comment + "]\n"

        output += "| " + spaced_string("Name", first)
        output += " | " + spaced_string("Value", second)
        output += " | " + spaced_string("Description", third) + " |\n"

        output += "| " + "-" * first
        output += " | :" + "-" * (second - 2) + ":"
        output += " | " + "-" * third + " |\n"

        for code_name, number, comment in zip(code_names, self.number_list, self.comment_list):
            output += "| " + spaced_string(code_name, first)
            output += " | " + spaced_string(number, second)
            output += " | " + spaced_string(comment, third) + " |\n"

        output += "\n"
        return output

    def lookup(self, name: str) -> Optional[str]:
        """Resolved number text of an enumerator, or None."""
        for value_name, number in zip(self.name_list, self.number_list):
            if value_name == name:
                return number
        return None

    def replace_enumeration_name_with_value(self, text: str) -> str:
        """Replace every enumerator name found in text with its resolved number."""
        for name, number in zip(self.name_list, self.number_list):
            if not name or name == number:
                continue
            if name in text:
                text = text.replace(name, number)
        return text
