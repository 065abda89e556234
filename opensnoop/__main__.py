from opensnoop.cli import main

raise SystemExit(main())
