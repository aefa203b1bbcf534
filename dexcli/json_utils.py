"""
Module which contains utils for serializing JSON.

dumps() mirrors the stdlib json.dumps arguments it needs but utilizes orjson, which
is what the credential payload printed on stdout goes through.
"""

import orjson

def dumps(obj, *, default=None, indent=None, sort_keys=False):
    option = 0

    if indent is not None:
        option |= orjson.OPT_INDENT_2

    if sort_keys:
        option |= orjson.OPT_SORT_KEYS

    return orjson.dumps(obj, default=default, option=option).decode('utf-8')
