"""
Entry point for python -m synapse_index
"""
from synapse_index.cli import main

if __name__ == '__main__':
    main()
