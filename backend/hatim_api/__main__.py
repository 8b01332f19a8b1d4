"""Run the gateway with `python -m hatim_api`."""

from hatim_api.main import main

if __name__ == "__main__":
    main()
