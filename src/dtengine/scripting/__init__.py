"""
Support for writing scripts using the dtengine library.

The expected usage of core dtengine types is like:

    from dtengine import DataEngine

However, the scripting package is not part of the core
library, and contains extensions.

Therefore, the expected usage is as follows:

    from dtengine.scripting import dt_exception

That is, each module whose name starts with `dt_` in this
package is an independent extension module you may want
to optionally load for writing dtengine based scripts.
"""
