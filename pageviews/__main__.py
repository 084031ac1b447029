import sys

from pageviews.jobs.top_pages import main

if __name__ == "__main__":
    sys.exit(main())
