from gator.cli import main

raise SystemExit(main())
