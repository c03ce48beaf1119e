import re
# Patterns kept in their own file to avoid confusing the assistant when it is asked to edit this tool itself

tag_pattern = re.compile(
    r"<(/?)(file|change|description|search|content)\b"
    r"([^<>]*?)"                     # Attributes
    r"(/?)>",
    re.IGNORECASE
)

attribute_pattern = re.compile(
    r"([\w:.-]+)\s*=\s*(?:\"([^\"]*)\"|'([^']*)')"
)

# A body framed by two lines holding only "===" is taken verbatim
fence_open_pattern = re.compile(r"\s*^[ \t]*===[ \t]*\r?\n", re.MULTILINE)
fence_close_pattern = re.compile(r"^[ \t]*===[ \t]*\r?$", re.MULTILINE)

def closing_tag_pattern(name: str) -> re.Pattern:
    return re.compile(rf"</{name}\s*>", re.IGNORECASE)

FENCE = "==="

change_document_example = """<file path="src/greeting.py" action="modify">
  <change>
    <description>Make the greeting louder</description>
    <search>
===
    print("hello")
===
    </search>
    <content>
===
    print("HELLO")
===
    </content>
  </change>
</file>
<file path="docs/NOTES.md" action="create">
  <change>
    <description>New notes file</description>
    <content>
===
# Notes
===
    </content>
  </change>
</file>
<file path="old_module.py" action="delete" />"""

formatting_instructions = f"""Reply with a change document describing every file you want to touch.
Use one <file> block per file with a `path` attribute and an `action` attribute:
  - create: new file, exactly one <change> holding the full <content>
  - rewrite: replace an existing file, exactly one <change> holding the full <content>
  - modify: edit in place, one or more <change> blocks, each with a <search> fragment copied verbatim
    from the current file and the <content> that replaces it (only the first occurrence is replaced)
  - delete: remove the file, no <change> blocks needed
Frame every <search> and <content> body between two lines containing only {FENCE}.
A <description> inside each <change> is optional and only shown to the user.
You may add a <Plan> block with your reasoning before the file blocks.

Example:
{change_document_example}
"""
