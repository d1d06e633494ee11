"""Top-level package for the Bucket Budget dashboard.

Income minus bills is split across named buckets, either as fixed
amounts or as percentages of what is left.  The primary modules are:

* ``allocation`` - the pure allocation calculation
* ``buckets`` - bucket storage, default handling and deductions
* ``rules`` - routing expenses to buckets by label, keyword or category
* ``records`` - incomes, bills, bill payments and expenses
* ``dashboard`` - the Streamlit overview page

To run the dashboard from the command line you can execute:

```bash
streamlit run bucket_dashboard/Home.py
```

or use ``run_dashboard.py`` at the project root.
"""

# The Streamlit pages are not imported here so the services can be used
# without Streamlit installed.
from . import allocation  # noqa: F401  # re-exported for convenience
from . import buckets  # noqa: F401  # re-exported for convenience
from . import records  # noqa: F401  # re-exported for convenience
from . import rules  # noqa: F401  # re-exported for convenience

__all__ = ["allocation", "buckets", "records", "rules"]
