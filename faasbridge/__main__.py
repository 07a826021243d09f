"""Run the runtime: python -m faasbridge"""

from faasbridge.bootstrap import main

main()
