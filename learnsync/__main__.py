"""Allow running as: python -m learnsync"""

from learnsync.cli import main

if __name__ == "__main__":
    main()
