from night.cli import main

raise SystemExit(main())
